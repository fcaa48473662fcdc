from pydantic import BaseModel


class ConnectionStatus(BaseModel):
    """Connectivity snapshot published by the application database."""
    connected: bool = False
    connecting: bool = False
    last_synced_at: str | None = None
