"""
Submission Storage Services

Local implementations of the two storage collaborators:

- LocalBlobStorage: key -> bytes store for original photographs, annotated
  rasters and reports
- LocalSubmissionStore: one JSON file per submission

Directory structure:
    data/
        blobs/
            original-image/original-<ts>-<rand>.png
            annotated-image/annotated-<ts>-<rand>.png
            report/report-<ts>-<rand>.pdf
        submissions/
            <submission_id>.json
"""
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional, Protocol
import logging
import time
import uuid

from app.services.errors import StorageError
from app.services.submission.models import Submission

logger = logging.getLogger(__name__)


class BlobKind(str, Enum):
    ORIGINAL_IMAGE = "original-image"
    ANNOTATED_IMAGE = "annotated-image"
    REPORT = "report"


_FILE_PREFIX = {
    BlobKind.ORIGINAL_IMAGE: "original",
    BlobKind.ANNOTATED_IMAGE: "annotated",
    BlobKind.REPORT: "report",
}


def _write_atomic(path: Path, data: bytes) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_suffix(path.suffix + ".tmp")
    tmp.write_bytes(data)
    tmp.replace(path)  # atomic on same filesystem


class BlobStorage(Protocol):
    def store(self, kind: BlobKind, data: bytes, suffix: str = ".png") -> str: ...
    def load(self, ref: str) -> bytes: ...
    def exists(self, ref: str) -> bool: ...


class SubmissionStore(Protocol):
    def create(self, submission: Submission) -> None: ...
    def load_submission(self, submission_id: str) -> Submission: ...
    def save_submission(self, submission_id: str, patch: Dict[str, Any]) -> Submission: ...
    def list_submissions(self, user_id: Optional[str] = None) -> List[Submission]: ...


class LocalBlobStorage:
    """
    Byte store on the local filesystem

    Refs are posix paths relative to base_path, e.g.
    "annotated-image/annotated-1700000000000-1a2b3c4d5.png". Every store()
    call produces a new ref, so retries never overwrite earlier artifacts.
    """

    def __init__(self, base_path: Path = None):
        """
        Initialize blob storage

        Args:
            base_path: Base directory for blobs (default: data/blobs)
        """
        if base_path is None:
            base_path = Path("data/blobs")
        self.base_path = Path(base_path)
        try:
            self.base_path.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StorageError(f"Cannot create blob directory {self.base_path}: {e}") from e

    def _path_for(self, ref: str) -> Path:
        """Resolve a ref, refusing anything outside the base directory"""
        base = self.base_path.resolve()
        path = (base / ref).resolve()
        try:
            path.relative_to(base)
        except ValueError:
            raise StorageError(f"Invalid blob ref: {ref}")
        return path

    def store(self, kind: BlobKind, data: bytes, suffix: str = ".png") -> str:
        """
        Write bytes under a fresh, randomized name

        Args:
            kind: Blob category (selects the subdirectory)
            data: Bytes to store
            suffix: File extension including the dot

        Returns:
            Ref of the stored blob
        """
        kind = BlobKind(kind)
        name = f"{_FILE_PREFIX[kind]}-{int(time.time() * 1000)}-{uuid.uuid4().hex[:9]}{suffix}"
        ref = f"{kind.value}/{name}"
        try:
            _write_atomic(self._path_for(ref), data)
        except OSError as e:
            raise StorageError(f"Failed to store {kind.value} blob: {e}") from e
        logger.debug("Stored %s (%d bytes)", ref, len(data))
        return ref

    def load(self, ref: str) -> bytes:
        try:
            return self._path_for(ref).read_bytes()
        except OSError as e:
            raise StorageError(f"Failed to load blob {ref}: {e}") from e

    def exists(self, ref: str) -> bool:
        if not ref:
            return False
        try:
            return self._path_for(ref).is_file()
        except StorageError:
            return False


class LocalSubmissionStore:
    """
    Submission persistence as one JSON file per submission

    save_submission() applies a field patch to the stored record; list
    fields in the patch (annotation_documents, annotated_image_refs)
    replace the stored list as a whole.
    """

    def __init__(self, base_path: Path = None, permissive: bool = False):
        """
        Initialize submission store

        Args:
            base_path: Directory for submission files (default: data/submissions)
            permissive: Keep loading submissions whose annotation blobs are unreadable
        """
        if base_path is None:
            base_path = Path("data/submissions")
        self.base_path = Path(base_path)
        self.permissive = permissive
        try:
            self.base_path.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StorageError(f"Cannot create submission directory {self.base_path}: {e}") from e

    def _submission_path(self, submission_id: str) -> Path:
        if not submission_id or "/" in submission_id or "\\" in submission_id or submission_id.startswith("."):
            raise KeyError(f"Invalid submission id: {submission_id!r}")
        return self.base_path / f"{submission_id}.json"

    def _write(self, submission: Submission) -> None:
        try:
            _write_atomic(self._submission_path(submission.id), submission.to_json(indent=2).encode("utf-8"))
        except OSError as e:
            raise StorageError(f"Failed to save submission {submission.id}: {e}") from e

    def exists(self, submission_id: str) -> bool:
        return self._submission_path(submission_id).exists()

    def create(self, submission: Submission) -> None:
        if self.exists(submission.id):
            raise StorageError(f"Submission already exists: {submission.id}")
        self._write(submission)

    def load_submission(self, submission_id: str) -> Submission:
        """
        Load a submission

        Raises:
            KeyError: No submission with this id
        """
        path = self._submission_path(submission_id)
        if not path.exists():
            raise KeyError(f"Submission not found: {submission_id}")
        try:
            text = path.read_text(encoding="utf-8")
        except OSError as e:
            raise StorageError(f"Failed to load submission {submission_id}: {e}") from e
        return Submission.from_json(text, permissive=self.permissive)

    def save_submission(self, submission_id: str, patch: Dict[str, Any]) -> Submission:
        """
        Apply a patch to a stored submission and write it back

        Returns:
            The updated submission
        """
        submission = self.load_submission(submission_id)
        submission.apply_patch(patch)
        self._write(submission)
        return submission

    def list_submissions(self, user_id: Optional[str] = None) -> List[Submission]:
        """
        List submissions, newest upload first

        Args:
            user_id: Only return submissions uploaded by this user
        """
        submissions = []
        for file_path in self.base_path.glob("*.json"):
            submission = self.load_submission(file_path.stem)
            if user_id is None or submission.user_id == user_id:
                submissions.append(submission)
        return sorted(submissions, key=lambda s: s.uploaded_at, reverse=True)
