from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional, Dict, Any

PDF_MEDIA_TYPE = "application/pdf"
ZIP_MEDIA_TYPE = "application/zip"


@dataclass
class Artifact:
    """A named binary output ready to be downloaded"""
    filename: str
    data: bytes
    media_type: str = PDF_MEDIA_TYPE

    @property
    def size(self) -> int:
        return len(self.data)

    def to_dict(self) -> Dict[str, Any]:
        return {"filename": self.filename, "media_type": self.media_type, "size": self.size}


@dataclass
class AssemblyOutput:
    """What the assembler hands back: the artifacts plus how they were made"""
    artifacts: List[Artifact]
    fallback_applied: bool = False
    warnings: List[str] = field(default_factory=list)


@dataclass
class OperationResult:
    """Outcome of one tool run as shown to the user"""
    success: bool
    artifacts: List[Artifact] = field(default_factory=list)
    error: Optional[str] = None
    fallback_applied: bool = False
    warnings: List[str] = field(default_factory=list)
    error_type: Optional[str] = None
    created_at: datetime = field(default_factory=datetime.now)

    @classmethod
    def ok(cls, artifact: Artifact, fallback_applied: bool = False,
           warnings: Optional[List[str]] = None) -> "OperationResult":
        return cls(success=True, artifacts=[artifact], fallback_applied=fallback_applied,
                   warnings=list(warnings or []))

    @classmethod
    def failure(cls, message: str, error_type: Optional[str] = None) -> "OperationResult":
        return cls(success=False, error=message, error_type=error_type)

    def single(self) -> Artifact:
        if not self.success or len(self.artifacts) != 1:
            raise ValueError("Result does not hold exactly one artifact")
        return self.artifacts[0]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "error": self.error,
            "error_type": self.error_type,
            "fallback_applied": self.fallback_applied,
            "warnings": self.warnings,
            "artifacts": [artifact.to_dict() for artifact in self.artifacts],
            "created_at": self.created_at.isoformat(),
        }
