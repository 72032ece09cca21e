# ============================================
# FILE SYSTEM CAPABILITIES
# ============================================
from pathlib import Path
from typing import Any, Dict, Optional

from taskpilot.core.domain.capabilities import Capability


class _SandboxedFileCapability(Capability):
    """Resolves paths below an optional root directory."""

    def __init__(self, root_dir: Optional[str] = None):
        self.root_dir = Path(root_dir).resolve() if root_dir else None

    @property
    def category(self) -> str:
        return "files"

    def _resolve(self, path: str) -> Path:
        if self.root_dir is None:
            return Path(path)
        resolved = (self.root_dir / path).resolve()
        if resolved != self.root_dir and self.root_dir not in resolved.parents:
            raise PermissionError(f"Path escapes root directory: {path}")
        return resolved


class FileReadCapability(_SandboxedFileCapability):
    """Safe file reading with size limits"""

    @property
    def name(self) -> str:
        return "file_read"

    @property
    def description(self) -> str:
        return "Read a text file and return its contents"

    @property
    def parameters_schema(self) -> Dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "path": {"type": "string", "description": "File to read"},
                "encoding": {"type": "string", "default": "utf-8"},
                "max_size_mb": {"type": "number", "exclusiveMinimum": 0, "default": 10},
            },
            "required": ["path"],
        }

    async def invoke(self, params: Dict[str, Any]) -> Dict[str, Any]:
        path = params["path"]
        try:
            file_path = self._resolve(path)
            if not file_path.exists():
                return {"success": False, "error": f"File not found: {path}"}

            max_size_mb = params.get("max_size_mb", 10)
            file_size_mb = file_path.stat().st_size / (1024 * 1024)
            if file_size_mb > max_size_mb:
                return {"success": False, "error": f"File too large: {file_size_mb:.2f}MB > {max_size_mb}MB"}

            content = file_path.read_text(encoding=params.get("encoding", "utf-8"))
            return {
                "success": True,
                "data": {"content": content, "size": len(content), "path": str(file_path.absolute())},
            }
        except (OSError, UnicodeDecodeError, LookupError) as e:
            return {"success": False, "error": str(e)}


class FileWriteCapability(_SandboxedFileCapability):
    """Safe file writing with backup option"""

    @property
    def name(self) -> str:
        return "file_write"

    @property
    def description(self) -> str:
        return "Write text content to a file, keeping a .bak copy of any previous version"

    @property
    def parameters_schema(self) -> Dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "path": {"type": "string", "description": "File to write"},
                "content": {"type": "string"},
                "backup": {"type": "boolean", "default": True},
            },
            "required": ["path", "content"],
        }

    async def invoke(self, params: Dict[str, Any]) -> Dict[str, Any]:
        path, content = params["path"], params["content"]
        try:
            file_path = self._resolve(path)

            backed_up = False
            if params.get("backup", True) and file_path.exists():
                backup_path = file_path.with_suffix(file_path.suffix + ".bak")
                backup_path.write_text(file_path.read_text(encoding="utf-8"), encoding="utf-8")
                backed_up = True

            file_path.parent.mkdir(parents=True, exist_ok=True)
            file_path.write_text(content, encoding="utf-8")

            return {
                "success": True,
                "data": {"path": str(file_path.absolute()), "size": len(content), "backed_up": backed_up},
                "side_effects": f"wrote {len(content)} characters to {file_path.name}",
            }
        except (OSError, UnicodeDecodeError) as e:
            return {"success": False, "error": str(e)}
