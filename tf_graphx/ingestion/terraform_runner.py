"""
tf_graphx/ingestion/terraform_runner.py — terraform CLI boundary.

Produces the plan JSON document consumed by plan_parser. When no plan file is
given, a fresh one is written with `terraform plan -out=<file>` first (this
requires an initialised working directory).
"""

import logging
import subprocess
from typing import Optional

from tf_graphx.config import DEFAULT_CONFIG
from tf_graphx.errors import TerraformError

logger = logging.getLogger(__name__)


def _run(binary: str, args: list[str], workdir: Optional[str]) -> str:
    cmd = [binary, *args]
    logger.debug("Running: %s", " ".join(cmd))
    try:
        result = subprocess.run(
            cmd,
            cwd=workdir,
            capture_output=True,
            text=True,
            check=True,
        )
    except FileNotFoundError as exc:
        raise TerraformError(f"terraform binary not found: {binary}") from exc
    except subprocess.CalledProcessError as exc:
        output = (exc.stdout or "") + (exc.stderr or "")
        raise TerraformError(
            f"`{' '.join(cmd)}` exited with status {exc.returncode}", output=output
        ) from exc
    return result.stdout


def show_plan_json(
    plan_file: Optional[str] = None,
    workdir: Optional[str] = None,
    binary: str = DEFAULT_CONFIG.terraform_binary,
    default_plan_filename: str = DEFAULT_CONFIG.plan_filename,
) -> str:
    """
    Return the JSON plan document for `plan_file` (generating one if omitted).

    Args:
        plan_file:             Existing binary plan file, or None to run
                               `terraform plan -out=<default_plan_filename>`.
        workdir:               Terraform working directory (default: cwd).
        binary:                terraform executable name or path.
        default_plan_filename: Plan file written when plan_file is None.

    Raises:
        TerraformError: binary missing or a command exited non-zero.
    """
    if not plan_file:
        logger.info("No plan file given — generating %s", default_plan_filename)
        _run(binary, ["plan", f"-out={default_plan_filename}"], workdir)
        plan_file = default_plan_filename
    return _run(binary, ["show", "-json", plan_file], workdir)
