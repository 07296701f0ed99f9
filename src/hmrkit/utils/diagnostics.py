from typing import Any, Dict, Optional
from pydantic import BaseModel

class HMRDiagnostic(BaseModel):
    """
    Standardized error reporting object for compilation and rebuild issues.
    """
    file_path: str
    error_code: str
    message: str
    severity: str = "error" # 'error', 'warning', 'critical'
    suggestion: Optional[str] = None
    line_number: Optional[int] = None
    column: Optional[int] = None

    def __str__(self) -> str:
        loc = f"{self.file_path}"
        if self.line_number:
            loc += f":{self.line_number}"
            if self.column:
                loc += f":{self.column}"
        return f"[{self.error_code}] {self.message} (at {loc})"

class CompilationError(Exception):
    """
    Raised by a compiler collaborator when a framework fails to build.
    Carries the optional source location reported to clients in `rebuild-error`.
    """
    def __init__(
        self,
        message: str,
        file: Optional[str] = None,
        line: Optional[int] = None,
        column: Optional[int] = None,
        framework: Optional[str] = None,
    ):
        self.message = message
        self.file = file
        self.line = line
        self.column = column
        self.framework = framework
        super().__init__(message)

    def __str__(self) -> str:
        ctx = f" in '{self.framework}'" if self.framework else ""
        return f"Compilation Error{ctx}: {self.message}"

    def to_diagnostic(self) -> HMRDiagnostic:
        return HMRDiagnostic(
            file_path=self.file or "<build>",
            error_code="ERR_COMPILE",
            message=self.message,
            line_number=self.line,
            column=self.column,
        )

    def to_payload(self) -> Dict[str, Any]:
        """Return the location fields used by the `rebuild-error` message."""
        payload: Dict[str, Any] = {"error": self.message}
        if self.file is not None:
            payload["file"] = self.file
        if self.line is not None:
            payload["line"] = self.line
        if self.column is not None:
            payload["column"] = self.column
        return payload
