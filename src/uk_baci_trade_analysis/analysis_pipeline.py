"""
Presentation render script for the UK BACI trade analysis.

Exports the marimo slide notebooks to standalone HTML, one after the other.
"""

import subprocess
import sys
from pathlib import Path
from typing import Dict, List, Optional

from uk_baci_trade_analysis.utils.logging_config import get_logger

logger = get_logger(__name__)

ANALYSIS_SCRIPT_DIR = Path(__file__).parent / "analysis"

PRESENTATION_SCRIPTS = [
    ANALYSIS_SCRIPT_DIR / "UK_TRADE_PRESENTATION.py",
]

DEFAULT_RENDER_DIR = Path("outputs/presentation")


def build_export_command(
    script_path: Path, output_path: Path, notebook_args: Optional[Dict[str, str]] = None
) -> List[str]:
    """marimo export command; `notebook_args` are forwarded to the notebook's mo.cli_args()."""
    command = [sys.executable, "-m", "marimo", "export", "html", str(script_path), "-o", str(output_path)]
    if notebook_args:
        command.append("--")
        for key, value in notebook_args.items():
            command.extend([f"--{key}", str(value)])
    return command


# --- Main Render Function ---
def render_presentation(
    output_dir: str | Path = DEFAULT_RENDER_DIR, notebook_args: Optional[Dict[str, str]] = None
) -> bool:
    """Renders every presentation notebook to HTML, stopping at the first failure."""
    logger.info("--- Starting Presentation Render ---")
    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)
    render_successful = True

    for script_path in PRESENTATION_SCRIPTS:
        if not script_path.exists():
            logger.error(f"Script not found: {script_path}. Halting render.")
            render_successful = False
            break

        output_path = output_dir / f"{script_path.stem}.html"
        command = build_export_command(script_path, output_path, notebook_args)
        logger.info(f"Rendering {script_path.name} -> {output_path}")
        logger.debug(f"Executing command: {' '.join(command)}")

        try:
            subprocess.run(
                command,
                check=True,
                capture_output=True,
                text=True,
                encoding="utf-8",
            )
            logger.info(f"✅ Rendered {script_path.name}")

        except subprocess.CalledProcessError as e:
            logger.error(f"❌ Error rendering: {script_path.name}")
            logger.error(f"Return code: {e.returncode}")
            logger.error(f"stdout:\n{e.stdout}")
            logger.error(f"stderr:\n{e.stderr}")
            render_successful = False
            break

    if render_successful:
        logger.info("--- Presentation Render finished successfully ---")
    else:
        logger.error("--- Presentation Render finished with errors ---")

    return render_successful


def main():
    sys.exit(0 if render_presentation() else 1)


if __name__ == "__main__":
    main()
