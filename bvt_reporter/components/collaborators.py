"""
Collaborators - External repair and re-run processes driven by the recovery loop
"""
import asyncio
import json
import os
import re
import shlex
import tempfile
from pathlib import Path
from typing import Dict, Iterable, List, Optional

from pydantic import ValidationError

from .base_component import BaseComponent
from ..config import Settings
from ..models.report import RetrainStats


class ProcessCollaborator(BaseComponent):
    """Runs a configured command line and relays its output to the log."""

    def __init__(self, name: str, command_setting: str, config: Settings = None):
        super().__init__(name=name, config=config)
        command = getattr(self.settings, command_setting)
        self.command = shlex.split(command) if command else []

    @property
    def configured(self) -> bool:
        return bool(self.command)

    @property
    def cwd(self) -> Path:
        return Path(self.settings.WORKING_DIR)

    async def run(self, args: List[str], env: Optional[Dict[str, str]] = None) -> int:
        """
        Run the command with extra arguments.

        Args:
            args: Arguments appended to the configured command
            env: Extra environment variables

        Returns:
            Process exit code
        """
        process = await asyncio.create_subprocess_exec(
            *self.command,
            *args,
            cwd=str(self.cwd),
            env={**os.environ, **(env or {})},
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
        stdout, stderr = await process.communicate()
        for line in stdout.decode(errors="replace").splitlines():
            self.log_info(line)
        for line in stderr.decode(errors="replace").splitlines():
            self.log_warning(line)
        return process.returncode


class RepairCollaborator(ProcessCollaborator):
    """
    Automated repair engine. Re-executes the failing steps of one scenario
    and writes its RetrainStats as JSON to a temp file.
    """

    def __init__(self, config: Settings = None):
        super().__init__("RepairCollaborator", "REPAIR_COMMAND", config)

    async def repair(self, uri: str, scenario_name: str, step_indices: Iterable[int]) -> Optional[RetrainStats]:
        """
        Ask the repair engine to fix a scenario.

        Args:
            uri: Feature file path relative to the working directory
            scenario_name: Scenario to repair
            step_indices: Failing step indices

        Returns:
            RetrainStats on success, None when the engine failed or is not configured
        """
        if not self.configured:
            self.log_debug("No repair command configured")
            return None

        handle, temp_file = tempfile.mkstemp(suffix=".json")
        os.close(handle)
        args = [
            str(self.cwd),
            str(self.cwd / uri),
            scenario_name,
            ",".join(str(i) for i in step_indices),
        ]
        if self.settings.ENV_NAME:
            args.append(f"--env={self.settings.ENV_NAME}")
        args.append(f"--temp-file={temp_file}")

        try:
            code = await self.run(args)
            if code != 0:
                self.log_error(f"Repair of '{scenario_name}' exited with code {code}")
                return None
            try:
                return RetrainStats.model_validate(json.loads(Path(temp_file).read_text(encoding="utf-8")))
            except (OSError, ValueError, ValidationError) as e:
                self.log_error(f"Could not read repair result for '{scenario_name}': {e}")
                return None
        finally:
            Path(temp_file).unlink(missing_ok=True)


class RerunCollaborator(ProcessCollaborator):
    """Re-executes a single scenario after a successful repair."""

    def __init__(self, config: Settings = None):
        super().__init__("RerunCollaborator", "RERUN_COMMAND", config)

    async def rerun(self, uri: str, scenario_name: str, attempted_steps: Iterable[int]) -> Optional[int]:
        """
        Re-run one scenario, carrying forward the already attempted step indices.

        Returns:
            Exit code, or None when no re-run command is configured
        """
        if not self.configured:
            self.log_debug("No re-run command configured")
            return None
        env = {"PREVIOUS_FAILED_STEPS": ",".join(str(i) for i in attempted_steps)}
        if self.settings.RERUN_ID:
            env["RERUN_ID"] = self.settings.RERUN_ID
        args = [str(self.cwd / uri), "--name", f"^{re.escape(scenario_name)}$"]
        return await self.run(args, env=env)
