"""
Artifact publishing.

Uploads rendered media under a key derived from the source key, writes the
SRT sidecar and keeps the post metadata document in step with the render.
"""

import json
import logging
import posixpath
from typing import Any, Dict, List, Optional

from .adapters.base import ObjectStore
from .models import CaptionLine, JobFormat, JobRecord, PublishResult
from .pipeline.transcribe import build_srt
from .pipeline.util import source_base, source_stem

logger = logging.getLogger("shorts_worker")

POSTS_PREFIX = "posts/"
SHORTS_PREFIX = "shorts/"


def output_key(source_key: str, format: str = JobFormat.SHORT) -> str:
    """
    Deterministic artifact key for a source.

    audio/1700000000-test.mp3 -> shorts/test-9x16.mp4 (short)
    posts/1700000000.mp3      -> posts/1700000000.mp4 (video)
    """
    if format == JobFormat.VIDEO:
        return f"{POSTS_PREFIX}{source_base(source_key)}.mp4"
    return f"{SHORTS_PREFIX}{source_stem(source_key)}-9x16.mp4"


def caption_key(key: str) -> str:
    return posixpath.splitext(key)[0] + ".srt"


class Publisher:
    """Pushes render results into the object store"""

    def __init__(self, object_store: ObjectStore, meta_key: str = "posts/_meta.json"):
        self.object_store = object_store
        self.meta_key = meta_key

    def publish(self, job: JobRecord, local_path: str, lines: List[CaptionLine],
                transcript: str = "") -> PublishResult:
        """Upload the artifact and sidecar, then update post metadata"""
        key = output_key(job.source_key, job.format)
        self.object_store.upload_file(local_path, key, 'video/mp4')

        srt_key = None
        if any(line.text.strip() for line in lines):
            srt_key = caption_key(key)
            self.object_store.put(srt_key, build_srt(lines).encode('utf-8'), 'application/x-subrip')

        if job.source_key.startswith(POSTS_PREFIX):
            self.update_post_meta(job.source_key, job.title, transcript)

        url = self.object_store.public_url(key)
        logger.info(f"PUBLISHED: job {job.id} -> {key}")
        return PublishResult(key=key, url=url, caption_key=srt_key)

    def read_meta(self) -> Dict[str, Any]:
        """Post metadata keyed by post id; unreadable documents read as empty"""
        raw = self.object_store.get(self.meta_key)
        if not raw:
            return {}
        try:
            meta = json.loads(raw)
        except json.JSONDecodeError:
            logger.warning(f"Post metadata {self.meta_key} is not valid JSON, starting fresh")
            return {}
        return meta if isinstance(meta, dict) else {}

    def write_meta(self, meta: Dict[str, Any]) -> None:
        self.object_store.put(
            self.meta_key,
            json.dumps(meta, indent=2).encode('utf-8'),
            'application/json'
        )

    def update_post_meta(self, source_key: str, title: Optional[str], transcript: str) -> bool:
        """
        Set the post title from the job and fill an empty body with the transcript.

        Returns:
            True when the metadata document was rewritten
        """
        post_id = source_base(source_key)
        meta = self.read_meta()
        entry = dict(meta.get(post_id) or {})
        changed = False

        if title and entry.get('title') != title:
            entry['title'] = title
            changed = True
        if transcript and not entry.get('body'):
            entry['body'] = transcript
            changed = True

        if not changed:
            return False

        meta[post_id] = entry
        self.write_meta(meta)
        logger.info(f"Updated post metadata for {post_id}")
        return True
