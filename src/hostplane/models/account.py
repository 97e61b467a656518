"""Owning hosting account, supplied by the identity layer."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class Account:
    username: str
    uid: int
    gid: int
    home_dir: str

    @property
    def log_dir(self) -> str:
        return f"{self.home_dir.rstrip('/')}/logs"
