"""
Agent command configuration.

Loads agents.yaml from the smd directory to decide which CLI runs each
stage. Without the file the defaults below apply.

Templates use {variable} placeholders filled from a context dict. If a
template contains {prompt}, the prompt is passed as a single argument;
otherwise it is fed to the agent on stdin.

Example agents.yaml:

    stages:
      worker: claude --dangerously-skip-permissions --output-format stream-json --verbose -p {prompt}
      convert: claude --dangerously-skip-permissions -p {prompt}
"""

import logging
import re
import shlex
import shutil
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

import yaml

from smd.lib.constants import AGENTS_FILENAME

logger = logging.getLogger(__name__)


DEFAULT_STAGE_COMMANDS = {
    # One story, one session. Output is streamed into the slot's log.
    "worker": "claude --dangerously-skip-permissions --verbose --output-format stream-json -p {prompt}",

    # Requirements markdown -> smd-prd.json, run once before scheduling
    "convert": "claude --dangerously-skip-permissions -p {prompt}",
}

_PROMPT_PLACEHOLDER = "__SMD_PROMPT__"


@dataclass
class AgentsConfig:
    """Agent configuration from agents.yaml."""
    stages: dict[str, str] = field(default_factory=lambda: DEFAULT_STAGE_COMMANDS.copy())


def load_agents_config(smd_dir: Optional[Path]) -> AgentsConfig:
    """Load agents.yaml and return AgentsConfig, falling back to defaults."""
    if smd_dir is None:
        return AgentsConfig()

    config_path = smd_dir / AGENTS_FILENAME
    if not config_path.exists():
        return AgentsConfig()

    try:
        data = yaml.safe_load(config_path.read_text())
    except yaml.YAMLError as e:
        logger.warning(f"Failed to parse {config_path}: {e}")
        return AgentsConfig()

    stages = DEFAULT_STAGE_COMMANDS.copy()
    if isinstance(data, dict) and isinstance(data.get("stages"), dict):
        for name, template in data["stages"].items():
            if not isinstance(template, str) or not template.strip():
                logger.warning(f"Ignoring empty command for stage '{name}' in {config_path}")
                continue
            stages[name] = template
    elif data:
        logger.warning(f"{config_path} has no 'stages' mapping, using defaults")
    return AgentsConfig(stages=stages)


@dataclass
class StageCommand:
    """A stage command ready for subprocess."""
    cmd: list[str]
    prompt_via_stdin: bool

    def get_stdin_input(self, prompt: str) -> str | None:
        return prompt if self.prompt_via_stdin else None


def get_stage_command(
    config: AgentsConfig,
    stage: str,
    context: dict[str, str] | None = None,
) -> StageCommand:
    """Build the argv for a stage with variable substitution.

    Raises:
        ValueError: If the stage is unknown

    Example:
        >>> get_stage_command(AgentsConfig(), "convert", {"prompt": "/smd-convert a.md"}).cmd
        ['claude', '--dangerously-skip-permissions', '-p', '/smd-convert a.md']
    """
    if stage not in config.stages:
        raise ValueError(f"Unknown stage: {stage}")

    template = config.stages[stage]
    prompt_via_stdin = "{prompt}" not in template
    context = dict(context or {})
    prompt_value = context.pop("prompt", None)

    # Keep the prompt out of shlex; it is free text with quotes and newlines
    template = template.replace("{prompt}", _PROMPT_PLACEHOLDER)
    for key, value in context.items():
        template = template.replace(f"{{{key}}}", shlex.quote(str(value)))

    remaining = re.findall(r'\{(\w+)\}', template)
    if remaining:
        logger.error(f"Stage '{stage}' has unsubstituted variables: {remaining}")

    cmd = shlex.split(template)
    if prompt_value is not None:
        cmd = [prompt_value if arg == _PROMPT_PLACEHOLDER else arg for arg in cmd]

    return StageCommand(cmd=cmd, prompt_via_stdin=prompt_via_stdin)


def get_stage_binary(config: AgentsConfig, stage: str) -> str:
    """First word of a stage's command."""
    if stage not in config.stages:
        raise ValueError(f"Unknown stage: {stage}")
    parts = shlex.split(config.stages[stage])
    return parts[0] if parts else ""


@dataclass
class BinaryCheckResult:
    """Result of checking stage binaries."""
    ok: bool
    missing_binary: str | None = None
    stages_affected: list[str] = field(default_factory=list)
    error_message: str | None = None


def validate_stage_binaries(config: AgentsConfig, stages: list[str]) -> BinaryCheckResult:
    """Check that every binary the given stages need is on PATH."""
    binary_to_stages: dict[str, list[str]] = {}
    for stage in stages:
        if stage in config.stages:
            binary_to_stages.setdefault(get_stage_binary(config, stage), []).append(stage)

    for binary, affected in binary_to_stages.items():
        if shutil.which(binary) is None:
            hint = ("Install from: https://docs.anthropic.com/en/docs/claude-code"
                    if binary == "claude" else f"Install {binary}")
            message = "\n".join([
                f"'{binary}' is required but not installed.",
                f"Stages that need it: {', '.join(affected)}",
                hint,
                f"Or point these stages at another command in {AGENTS_FILENAME}.",
            ])
            return BinaryCheckResult(
                ok=False,
                missing_binary=binary,
                stages_affected=affected,
                error_message=message,
            )

    return BinaryCheckResult(ok=True)
