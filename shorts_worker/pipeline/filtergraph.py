"""
Filter graph construction for caption-synchronized renders.

The composition is an ordered chain of tagged stages:

1. Background     solid canvas (color source)
2. Visualization  showspectrum / showwaves from the audio input
3. Overlay        background + visualization + brand bar
4. Masthead       brand text on the bar (optional)
5. Title card     centered title during the first 1.2s (optional)
6. Captions       one gated text stage per caption line

Stages stay dataclasses until serialize_graph() turns the chain into an
ffmpeg -filter_complex string. All literal text goes through escape_text()
on the way out, nowhere else.
"""

import re
import textwrap
from dataclasses import dataclass, field
from typing import List, Optional, Tuple, Union

from ..models import CaptionLine
from .util import ffmpeg_color, parse_hex_color

TITLE_CARD_SECONDS = 1.2
CONTRAST_THRESHOLD = 140
DARK_TEXT = "0x111111"
LIGHT_TEXT = "white"
CAPTION_BOX_COLOR = "black@0.55"

AUDIO_INPUT = "0:a"

# Reserved characters at each parsing level. Option values are split on
# ':' and the graph is split on '[],;'; both levels honor '\' and quotes.
_OPTION_RESERVED = "\\':"
_GRAPH_RESERVED = "\\'[],;"
_CONTROL_CHARS = re.compile(r'[\x00-\x1f\x7f]+')


@dataclass(frozen=True)
class RenderProfile:
    """Canvas geometry for one output format"""
    name: str
    width: int
    height: int
    viz_height: int
    viz_y: int
    bar_height: int
    masthead_size: int
    title_size: int
    caption_size: int
    caption_y: int
    caption_wrap: int
    line_spacing: int = 12


PROFILES = {
    "short": RenderProfile(
        name="short", width=1080, height=1920,
        viz_height=640, viz_y=640, bar_height=180,
        masthead_size=56, title_size=84,
        caption_size=64, caption_y=1380, caption_wrap=24,
    ),
    "video": RenderProfile(
        name="video", width=1080, height=1080,
        viz_height=480, viz_y=300, bar_height=120,
        masthead_size=44, title_size=72,
        caption_size=52, caption_y=820, caption_wrap=30,
    ),
}


@dataclass(frozen=True)
class Background:
    output: str
    width: int
    height: int
    color: str
    rate: int
    duration: float


@dataclass(frozen=True)
class Visualization:
    source: str
    output: str
    width: int
    height: int
    mode: str
    rate: int


@dataclass(frozen=True)
class Overlay:
    base: str
    top: str
    output: str
    y: int
    bar_height: int
    bar_color: str


@dataclass(frozen=True)
class Text:
    source: str
    output: str
    role: str  # masthead, title, caption
    rows: Tuple[str, ...]
    font_size: int
    color: str
    y: int
    line_spacing: int = 12
    box: bool = False
    box_color: str = CAPTION_BOX_COLOR
    enable: Optional[Tuple[float, float]] = None
    font_file: Optional[str] = None


Stage = Union[Background, Visualization, Overlay, Text]


@dataclass
class FilterGraph:
    """An ordered stage chain plus the name of the variant it represents"""
    stages: List[Stage]
    variant: str = "captioned"
    visualization: str = "spectrum"
    roles: Tuple[str, ...] = field(default_factory=tuple)

    @property
    def output(self) -> str:
        return self.stages[-1].output

    @property
    def has_captions(self) -> bool:
        return "caption" in self.roles

    def serialize(self) -> str:
        return serialize_graph(self.stages)


def escape_text(value: str) -> str:
    """
    Escape literal text for a drawtext option inside a filtergraph.

    Control characters (newlines included) collapse to a space; wrapped
    rows are emitted as separate drawtext filters instead.
    """
    value = _CONTROL_CHARS.sub(' ', value)
    escaped = ''.join('\\' + ch if ch in _OPTION_RESERVED else ch for ch in value)
    return ''.join('\\' + ch if ch in _GRAPH_RESERVED else ch for ch in escaped)


def luminance(color: str) -> float:
    """Relative luminance Y = 0.2126R + 0.7152G + 0.0722B on 0-255 channels"""
    r, g, b = parse_hex_color(color)
    return 0.2126 * r + 0.7152 * g + 0.0722 * b


def contrast_text_color(background: str) -> str:
    """Dark text on light backgrounds, light text on dark ones"""
    if luminance(background) > CONTRAST_THRESHOLD:
        return DARK_TEXT
    return LIGHT_TEXT


def gate_expr(start: float, end: float) -> str:
    """Timeline expression true for start <= t < end"""
    return f"'gte(t,{start:.3f})*lt(t,{end:.3f})'"


def _serialize_text_row(stage: Text, row: str, y: int) -> str:
    options = [
        f"text={escape_text(row)}",
        "expansion=none",
    ]
    if stage.font_file:
        options.append(f"fontfile={escape_text(stage.font_file)}")
    options += [
        f"fontsize={stage.font_size}",
        f"fontcolor={stage.color}",
        "x=(w-text_w)/2",
        f"y={y}",
    ]
    if stage.box:
        options += [
            "box=1",
            f"boxcolor={stage.box_color}",
            f"boxborderw={max(4, stage.font_size // 4)}",
        ]
    if stage.enable is not None:
        options.append(f"enable={gate_expr(*stage.enable)}")
    return "drawtext=" + ":".join(options)


def serialize_stage(stage: Stage) -> str:
    """Serialize one stage to a labelled filterchain"""
    if isinstance(stage, Background):
        return (
            f"color=c={stage.color}:s={stage.width}x{stage.height}"
            f":r={stage.rate}:d={stage.duration:.3f}[{stage.output}]"
        )

    if isinstance(stage, Visualization):
        size = f"{stage.width}x{stage.height}"
        if stage.mode == "waves":
            visual = f"showwaves=s={size}:mode=line:rate={stage.rate}:colors=white"
        else:
            visual = (
                f"showspectrum=s={size}:mode=combined:color=intensity"
                f":slide=scroll:legend=disabled,fps={stage.rate}"
            )
        return (
            f"[{stage.source}]aformat=channel_layouts=stereo,{visual},"
            f"format=yuv420p[{stage.output}]"
        )

    if isinstance(stage, Overlay):
        return (
            f"[{stage.base}][{stage.top}]overlay=x=0:y={stage.y}:shortest=1,"
            f"drawbox=x=0:y=0:w=iw:h={stage.bar_height}:color={stage.bar_color}@1:t=fill"
            f"[{stage.output}]"
        )

    if isinstance(stage, Text):
        row_height = stage.font_size + stage.line_spacing
        filters = [
            _serialize_text_row(stage, row, stage.y + i * row_height)
            for i, row in enumerate(stage.rows)
        ]
        return f"[{stage.source}]" + ",".join(filters) + f"[{stage.output}]"

    raise TypeError(f"Unknown stage type: {type(stage).__name__}")


def serialize_graph(stages: List[Stage]) -> str:
    """Serialize a stage chain into a -filter_complex argument"""
    return ";".join(serialize_stage(stage) for stage in stages)


class FilterGraphBuilder:
    """Builds stage chains for one render profile and clip duration"""

    def __init__(self, profile: RenderProfile, duration: float, fps: int = 30,
                 background_color: str = "#101418", bar_color: str = "#052962",
                 brand_text: Optional[str] = None, font_file: Optional[str] = None):
        self.profile = profile
        self.duration = float(duration)
        self.fps = fps
        self.background_color = ffmpeg_color(background_color)
        self.bar_color = ffmpeg_color(bar_color)
        self.masthead_color = contrast_text_color(bar_color)
        self.brand_text = brand_text
        self.font_file = font_file

    def build(self, lines: List[CaptionLine], title: Optional[str] = None,
              visualization: str = "spectrum", captions: bool = True,
              text: bool = True, variant: str = "captioned") -> FilterGraph:
        """
        Build one stage chain.

        Args:
            lines: Caption lines in clip-local seconds
            title: Optional title card text
            visualization: "spectrum" or "waves"
            captions: Include the title card and caption stages
            text: Include any text at all (masthead included)
            variant: Name recorded on the resulting graph
        """
        profile = self.profile
        stages: List[Stage] = [
            Background(
                output="bg",
                width=profile.width,
                height=profile.height,
                color=self.background_color,
                rate=self.fps,
                duration=self.duration,
            ),
            Visualization(
                source=AUDIO_INPUT,
                output="viz",
                width=profile.width,
                height=profile.viz_height,
                mode=visualization,
                rate=self.fps,
            ),
            Overlay(
                base="bg",
                top="viz",
                output="base",
                y=profile.viz_y,
                bar_height=profile.bar_height,
                bar_color=self.bar_color,
            ),
        ]
        roles = []

        if text and self.brand_text:
            self._append_text(
                stages, "masthead", [self.brand_text.strip()],
                font_size=profile.masthead_size,
                color=self.masthead_color,
                y=(profile.bar_height - profile.masthead_size) // 2,
            )
            roles.append("masthead")

        if text and captions:
            if title and title.strip():
                rows = self._wrap(title, profile.caption_wrap)
                block = len(rows) * (profile.title_size + profile.line_spacing)
                self._append_text(
                    stages, "title", rows,
                    font_size=profile.title_size,
                    color=LIGHT_TEXT,
                    y=(profile.height - block) // 2,
                    box=True,
                    enable=(0.0, min(TITLE_CARD_SECONDS, self.duration)),
                )
                roles.append("title")

            for line in lines:
                rows = self._wrap(line.text, profile.caption_wrap)
                if not rows or line.end <= line.start:
                    continue
                self._append_text(
                    stages, "caption", rows,
                    font_size=profile.caption_size,
                    color=LIGHT_TEXT,
                    y=profile.caption_y,
                    box=True,
                    enable=(line.start, line.end),
                )
                if "caption" not in roles:
                    roles.append("caption")

        return FilterGraph(stages=stages, variant=variant,
                           visualization=visualization, roles=tuple(roles))

    def variants(self, lines: List[CaptionLine], title: Optional[str] = None,
                 visualization: str = "spectrum") -> List[FilterGraph]:
        """
        Graphs to try in order: captioned, captionless (stages 1-4),
        textless (stages 1-3). Variants identical to an earlier one are skipped.
        """
        candidates = [
            self.build(lines, title, visualization, captions=True, text=True, variant="captioned"),
            self.build(lines, title, visualization, captions=False, text=True, variant="captionless"),
            self.build(lines, title, visualization, captions=False, text=False, variant="textless"),
        ]
        graphs = []
        seen = set()
        for graph in candidates:
            serialized = graph.serialize()
            if serialized in seen:
                continue
            seen.add(serialized)
            graphs.append(graph)
        return graphs

    def _append_text(self, stages: List[Stage], role: str, rows: List[str], font_size: int,
                     color: str, y: int, box: bool = False,
                     enable: Optional[Tuple[float, float]] = None) -> None:
        index = sum(1 for stage in stages if isinstance(stage, Text)) + 1
        stages.append(Text(
            source=stages[-1].output,
            output=f"v{index}",
            role=role,
            rows=tuple(rows),
            font_size=font_size,
            color=color,
            y=y,
            line_spacing=self.profile.line_spacing,
            box=box,
            enable=enable,
            font_file=self.font_file,
        ))

    @staticmethod
    def _wrap(value: str, width: int) -> List[str]:
        value = _CONTROL_CHARS.sub(' ', value)
        return textwrap.wrap(value, width=width, break_long_words=False, break_on_hyphens=False)
