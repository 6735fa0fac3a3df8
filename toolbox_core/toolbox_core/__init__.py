from .auth import get_google_id_token
from .client import ToolboxClient
from .tool import ToolboxTool

__all__ = ["ToolboxClient", "ToolboxTool", "get_google_id_token"]
