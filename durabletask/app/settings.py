from __future__ import annotations

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="DURABLE_", extra="ignore")

    # Watch service
    watch_pool_size: int = 5
    watch_interval_ms: int = 100

    # Control directory layout: `<workspace><separator>tmp/durable-xxxxxxxx`
    workspace_tmp_separator: str = "@"

    # Stop cookie injected into every launched process environment
    cookie_variable: str = "JENKINS_SERVER_COOKIE"

    # Diagnostics; falls back to the host name when empty.
    node_name: str = ""

    # ShellScript launcher
    shell_binary: str = "sh"

    # Largest log delta `write_log` copies in one read (2**31 - 1)
    max_log_read_bytes: int = 2_147_483_647

    # durable-ctl
    cli_poll_interval_ms: int = 1000

    def watch_interval_seconds(self) -> float:
        return max(0, int(self.watch_interval_ms)) / 1000.0


SETTINGS = Settings()
