import os
import re
import posixpath
from typing import Tuple


_UPLOAD_TIMESTAMP = re.compile(r'^\d+-')
_HEX_COLOR = re.compile(r'^(?:#|0x)?([0-9a-fA-F]{6})$')


def get_work_dir(data_dir: str) -> str:
    """Get scratch directory for per-job temp files"""
    work_dir = os.path.join(data_dir, "work")
    os.makedirs(work_dir, exist_ok=True)
    return work_dir


def format_timecode(seconds: float) -> str:
    """Format seconds as an SRT timecode HH:MM:SS,mmm"""
    total_ms = int(round(max(0.0, seconds) * 1000))
    hours, rem = divmod(total_ms, 3600 * 1000)
    minutes, rem = divmod(rem, 60 * 1000)
    secs, millis = divmod(rem, 1000)
    return f"{hours:02d}:{minutes:02d}:{secs:02d},{millis:03d}"


def source_base(source_key: str) -> str:
    """File name of a key without its extension: posts/1700.mp3 -> 1700"""
    return posixpath.splitext(posixpath.basename(source_key))[0]


def source_stem(source_key: str) -> str:
    """Base name with any leading upload timestamp removed: audio/1700-test.mp3 -> test"""
    base = source_base(source_key)
    stem = _UPLOAD_TIMESTAMP.sub('', base, count=1)
    return stem or base


def parse_hex_color(color: str) -> Tuple[int, int, int]:
    """Parse #RRGGBB / 0xRRGGBB into an (r, g, b) tuple"""
    match = _HEX_COLOR.match(color.strip())
    if not match:
        raise ValueError(f"Invalid color: {color}")
    value = match.group(1)
    return int(value[0:2], 16), int(value[2:4], 16), int(value[4:6], 16)


def ffmpeg_color(color: str) -> str:
    """Normalize a hex color to the 0xRRGGBB form ffmpeg accepts"""
    r, g, b = parse_hex_color(color)
    return f"0x{r:02X}{g:02X}{b:02X}"


def get_file_size_mb(file_path: str) -> float:
    """Get file size in MB"""
    try:
        size_bytes = os.path.getsize(file_path)
        return size_bytes / (1024 * 1024)
    except OSError:
        return 0.0
