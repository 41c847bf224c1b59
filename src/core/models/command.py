"""
Command and Target models — what to run, and where.

A Target is one supported platform (``ubuntu:22.04``) holding the
ordered list of Commands to run there. Commands carry their own
failure message, fatality and timeout; the output fields are filled in
by the executor after the command runs.
"""

from __future__ import annotations

from pydantic import BaseModel, Field


class Command(BaseModel):
    """A single shell command and the policy for running it."""

    text: str = Field(min_length=1)              # passed verbatim to <shell> -c
    error_message: str = Field(min_length=1)     # shown when the command fails
    fatal: bool = False                          # abort error-only runs on failure
    timeout: float = Field(default=0, ge=0)      # seconds, 0 = unbounded
    before_text: str = ""                        # echoed before running
    after_text: str = ""                         # echoed after running

    # Filled in by the executor
    stdout: str = ""
    stderr: str = ""
    combined: str = ""

    def clear_output(self) -> None:
        self.stdout = ""
        self.stderr = ""
        self.combined = ""


class Target(BaseModel):
    """One platform a command package can run on."""

    id: str                 # "<distro>:<release>", e.g. "ubuntu:22.04"
    distro: str = ""
    release: str = ""
    os: str = "linux"
    shell: str = "bash"
    commands: list[Command] = Field(default_factory=list)

    def matches(self, target_id: str) -> bool:
        """Case-insensitive exact comparison against ``target_id``."""
        return self.id.lower() == target_id.lower()
