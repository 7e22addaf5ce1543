from pydantic_settings import BaseSettings


class ClientSettings(BaseSettings):
    server_url: str = "http://localhost:8000"
    role: str = "kitchen"
    language: str = "fr"
    log_level: str = "INFO"

    # Connection attempts are bounded; after the budget the session stays disconnected
    reconnection_attempts: int = 5
    connect_timeout: float = 10.0
    reconnection_delay: float = 1.0

    model_config = {"env_file": ".env", "env_prefix": "SYNC_"}

    @property
    def ws_url(self) -> str:
        base = self.server_url.rstrip("/")
        if base.startswith("https://"):
            return "wss://" + base[len("https://"):] + "/ws"
        if base.startswith("http://"):
            return "ws://" + base[len("http://"):] + "/ws"
        return base + "/ws"
