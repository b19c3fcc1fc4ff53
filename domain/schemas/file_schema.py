from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field, PrivateAttr

FitMode = Literal["cover", "contain", "fill", "inside", "outside"]


class ResizeOptions(BaseModel):
    width: int = Field(gt=0)  # Ej: 500
    height: int = Field(gt=0)  # Ej: 500
    fit: Optional[FitMode] = None  # None = "cover"
    file_resize_prefix: str  # Ej: "thumbnail-"
    file_name: Optional[str] = None  # Sustituye al nombre original


class FileContent(BaseModel):
    folder_name: str  # Ej: "profile-images"
    file_name: str  # Ej: "user-avatar.png"
    file_data: Any  # bytes, texto base64 u objeto con read()
    file_metadata: Optional[Dict[str, Any]] = None
    resize_options: Optional[List[ResizeOptions]] = None


class DerivedFile(BaseModel):
    folder_name: str
    file_name: str
    file_data: bytes
    file_metadata: Dict[str, Any] = {}


class FileType(BaseModel):
    ext: str  # Ej: "png"
    mime: str  # Ej: "image/png"


class UpsertResult(BaseModel):
    file_url: str
    file_path: str
    file_name: str
    file_type: Optional[str] = None
    file_content_type: Optional[str] = None


class UpsertOutcome(BaseModel):
    folder_name: str
    file_name: str
    result: Optional[UpsertResult] = None
    error: Optional[str] = None

    _exception: Optional[BaseException] = PrivateAttr(default=None)

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def exception(self) -> Optional[BaseException]:
        return self._exception


class UpsertReport(BaseModel):
    outcomes: List[UpsertOutcome] = []

    @property
    def ok(self) -> bool:
        return all(outcome.ok for outcome in self.outcomes)

    @property
    def results(self) -> List[UpsertResult]:
        return [outcome.result for outcome in self.outcomes if outcome.ok]

    @property
    def errors(self) -> List[UpsertOutcome]:
        return [outcome for outcome in self.outcomes if not outcome.ok]

    def raise_for_errors(self) -> None:
        """Relanza el primer error del lote, si lo hay."""
        for outcome in self.errors:
            if outcome.exception is not None:
                raise outcome.exception
            raise RuntimeError(outcome.error)


class DownloadRequest(BaseModel):
    file_path: str  # Ej: "profile-images/user-avatar.png"
    metadata: Dict[str, Any] = {}
