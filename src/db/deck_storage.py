from typing import Optional

import gridfs

from .mongo import get_db, get_deck_bucket_name

PPTX_CONTENT_TYPE = "application/vnd.openxmlformats-officedocument.presentationml.presentation"


def get_deck_fs(db=None) -> gridfs.GridFS:
    return gridfs.GridFS(db if db is not None else get_db(), collection=get_deck_bucket_name())


def deck_file_path(job_id: str) -> str:
    return f"decks/{job_id}.pptx"


def save_deck(job_id: str, data: bytes, fs: Optional[gridfs.GridFS] = None) -> str:
    """Store deck bytes under ``decks/{job_id}.pptx``, replacing an older upload.

    Returns the stored file path.
    """
    if not job_id:
        raise ValueError("job_id is required")
    fs = fs or get_deck_fs()
    path = deck_file_path(job_id)
    for old in fs.find({"filename": path}):
        fs.delete(old._id)
    fs.put(data, filename=path, contentType=PPTX_CONTENT_TYPE, jobId=job_id)
    return path


def load_deck(file_path: str, fs: Optional[gridfs.GridFS] = None) -> Optional[bytes]:
    fs = fs or get_deck_fs()
    grid_out = fs.find_one({"filename": file_path})
    if grid_out is None:
        return None
    return grid_out.read()
