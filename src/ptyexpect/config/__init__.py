"""Configuration — Pydantic models for ptyexpect settings."""

from __future__ import annotations

import json
import os
from typing import Any, Literal

from dotenv import find_dotenv, load_dotenv
from pydantic import BaseModel, Field


class TerminalConfig(BaseModel):
    """Pseudo-terminal session configuration."""

    identifier: str = Field(default="terminal", description="Name used in log lines")
    newline: Literal["default", "alternate"] = Field(
        default="default",
        description=(
            "Line terminator for send_line: 'default' sends \\n, 'alternate' "
            "sends \\r (ssh sessions, programs in raw mode)."
        ),
    )
    read_size: int = Field(default=4096, gt=0, description="Max bytes per read")
    rows: int | None = Field(default=None, ge=0, le=0xFFFF)
    cols: int | None = Field(default=None, ge=0, le=0xFFFF)


class ExpectConfig(BaseModel):
    """Defaults for expect calls made by the CLI."""

    timeout: float | None = Field(
        default=10.0, description="Seconds to wait for a match; None waits forever"
    )


class PTYExpectConfig(BaseModel):
    """Top-level ptyexpect configuration."""

    terminal: TerminalConfig = Field(default_factory=TerminalConfig)
    expect: ExpectConfig = Field(default_factory=ExpectConfig)

    @classmethod
    def load(cls, config_path: str | None = None) -> PTYExpectConfig:
        """Load config from file, env vars, or defaults.

        Priority: env vars > config file > defaults.

        Env vars:
            PTYEXPECT_NEWLINE    - 'default' or 'alternate'
            PTYEXPECT_READ_SIZE  - Max bytes per read from the terminal
            PTYEXPECT_ROWS       - Initial window rows
            PTYEXPECT_COLS       - Initial window columns
            PTYEXPECT_TIMEOUT    - Default expect timeout in seconds ('none' = forever)
        """
        load_dotenv(find_dotenv(usecwd=True))

        config_data: dict[str, Any] = {}

        if config_path and os.path.exists(config_path):
            with open(config_path) as f:
                config_data = json.load(f)

        terminal = config_data.get("terminal", {})

        env_newline = os.environ.get("PTYEXPECT_NEWLINE")
        if env_newline:
            terminal["newline"] = env_newline.lower()

        env_read_size = os.environ.get("PTYEXPECT_READ_SIZE")
        if env_read_size:
            terminal["read_size"] = int(env_read_size)

        env_rows = os.environ.get("PTYEXPECT_ROWS")
        if env_rows:
            terminal["rows"] = int(env_rows)

        env_cols = os.environ.get("PTYEXPECT_COLS")
        if env_cols:
            terminal["cols"] = int(env_cols)

        if terminal:
            config_data["terminal"] = terminal

        env_timeout = os.environ.get("PTYEXPECT_TIMEOUT")
        if env_timeout:
            expect = config_data.get("expect", {})
            expect["timeout"] = (
                None if env_timeout.lower() in ("none", "inf") else float(env_timeout)
            )
            config_data["expect"] = expect

        return cls.model_validate(config_data)
