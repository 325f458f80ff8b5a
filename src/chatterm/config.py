"""Runtime settings, overridable through ``CHATTERM_*`` environment variables."""

import os
from typing import Mapping, Optional

from pydantic import BaseModel, Field

ENV_PREFIX = "CHATTERM_"


class Settings(BaseModel):
    """Configuration for one chat client process."""

    model: str = "llama3.2"
    host: Optional[str] = None
    db_path: str = "chat_history.db"
    max_tokens: int = Field(default=256, gt=0)
    timeout: float = Field(default=30.0, gt=0)
    log_file: str = "log.txt"
    log_level: str = "INFO"
    max_workers: int = Field(default=4, gt=0)

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "Settings":
        """Builds settings from ``CHATTERM_<FIELD>`` variables.

        Parameters
        ----------
        environ : Mapping[str, str], optional
            The environment to read. Defaults to ``os.environ``.

        Raises
        ------
        pydantic.ValidationError
            If a variable holds a value of the wrong type.
        """
        environ = os.environ if environ is None else environ
        overrides = {}
        for name in cls.model_fields:
            value = environ.get(ENV_PREFIX + name.upper())
            if value is not None:
                overrides[name] = value
        return cls(**overrides)
