"""ToolLoader - loads and validates tool declarations."""

import json
from pathlib import Path
from typing import Any, List, Optional

import yaml
from pydantic import ValidationError

from .errors import ToolLoadError
from .schema import ToolDefinition

EXTENSIONS = ('.json', '.yaml', '.yml')


class ToolLoader:
    """
    Loads tool declarations from a catalog directory.

    Validates structure using Pydantic models.
    """

    def __init__(self, base_path: Optional[Path] = None):
        """
        Initialize loader.

        Args:
            base_path: Directory holding ``catalog/`` (default: the bundled package)
        """
        if base_path is None:
            base_path = Path(__file__).resolve().parent.parent
        self.base_path = Path(base_path)

    @property
    def catalog_dir(self) -> Path:
        return self.base_path / "catalog"

    def list_tools(self) -> List[str]:
        if not self.catalog_dir.is_dir():
            return []
        return sorted(
            path.stem for path in self.catalog_dir.iterdir()
            if path.is_file() and path.suffix in EXTENSIONS
        )

    def _find(self, tool_id: str) -> Path:
        for extension in EXTENSIONS:
            path = self.catalog_dir / f"{tool_id}{extension}"
            if path.exists():
                return path
        raise ToolLoadError(f"Tool definition not found: {self.catalog_dir / tool_id}")

    def load_tool(self, tool_id: str) -> ToolDefinition:
        """
        Load a tool declaration from the catalog.

        Args:
            tool_id: File stem of the declaration (e.g., 'sheet-updater')

        Returns:
            Validated ToolDefinition instance

        Raises:
            ToolLoadError: If the file is missing, unreadable or invalid
        """
        path = self._find(tool_id)
        try:
            with open(path, 'r') as f:
                if path.suffix == '.json':
                    data = json.load(f)
                else:
                    data = yaml.safe_load(f)
        except (json.JSONDecodeError, yaml.YAMLError) as e:
            raise ToolLoadError(f"Could not parse {path}: {e}")

        return self.parse_tool(data, tool_id)

    @staticmethod
    def parse_tool(data: Any, tool_id: Optional[str] = None) -> ToolDefinition:
        """Validate a raw declaration, e.g. one fetched over HTTP."""
        if not isinstance(data, dict):
            raise ToolLoadError("Tool definition must be an object")
        try:
            tool = ToolDefinition.model_validate(data)
        except ValidationError as e:
            raise ToolLoadError(f"Invalid tool definition '{tool_id or data.get('id', '?')}': {e}")
        if not tool.id and tool_id:
            tool.id = tool_id
        return tool
