import logging
import os

from .loader import section

logger = logging.getLogger(__name__)


class Core:
    def __init__(self, config: dict | None = None) -> None:
        server_cfg = section(config, "server")
        identity_cfg = section(config, "identity")

        self.HOST: str = str(server_cfg.get("host", os.getenv("HOST", "127.0.0.1")))
        self.PORT: int = int(server_cfg.get("port", os.getenv("PORT", "3891")))
        self.BASE_URL: str = str(
            server_cfg.get("base_url", os.getenv("BASE_URL", f"http://{self.HOST}:{self.PORT}"))
        ).rstrip("/")
        self.APP_NAME: str = str(server_cfg.get("app_name", os.getenv("APP_NAME", "keith's friend club")))
        # Viewer frames may carry an inline video as a data URL.
        self.MAX_WS_MESSAGE_MB: int = int(server_cfg.get("max_ws_message_mb", os.getenv("MAX_WS_MESSAGE_MB", "16")))

        self.PLC_DIRECTORY_URL: str = str(
            identity_cfg.get("plc_directory", os.getenv("PLC_DIRECTORY_URL", "https://plc.directory"))
        ).rstrip("/")
        self.RESOLVE_TIMEOUT: float = float(identity_cfg.get("timeout", os.getenv("RESOLVE_TIMEOUT", "10")))
        self.DID_CACHE_SIZE: int = int(identity_cfg.get("did_cache_size", os.getenv("DID_CACHE_SIZE", "1000")))

        required = [
            ("BASE_URL", self.BASE_URL),
            ("PLC_DIRECTORY_URL", self.PLC_DIRECTORY_URL),
        ]
        missing = [name for name, val in required if not val]
        if missing:
            raise ValueError(f"Missing environment variables: {', '.join(missing)}")

        if "localhost" in self.BASE_URL:
            logger.info("BASE_URL uses localhost; OAuth callers should prefer 127.0.0.1.")
