"""Plan files: extraction, validation and discovery.

A plan is a Markdown file carrying exactly one fenced block labelled
``symphony-phases`` whose body is a JSON array of phase definitions::

    ```symphony-phases
    [{"id": "setup-db", ...}]
    ```
"""

import json
import os
import re
from typing import Any, List, Optional

from symphony.config import PHASES_BLOCK_LABEL, PLANS_DIR
from symphony.errors import PlanError
from symphony.models import Phase
from symphony.validation import assert_valid_phases

PHASES_BLOCK_PATTERN = re.compile(
    r'```' + re.escape(PHASES_BLOCK_LABEL) + r'\s*\n([\s\S]*?)\n```')
PHASES_FENCE_PATTERN = re.compile(
    r'```' + re.escape(PHASES_BLOCK_LABEL) + r'\s*\n')

SKIPPED_DIRS = {'node_modules'}


def extract_phases_block(content: str) -> str:
    """Return the body of the single ``symphony-phases`` block."""
    matches = PHASES_BLOCK_PATTERN.findall(content)
    if not matches or not matches[0].strip():
        raise PlanError(
            f'No {PHASES_BLOCK_LABEL} code block found in plan file\n'
            f'Expected format:\n```{PHASES_BLOCK_LABEL}\n'
            f'[...phases JSON...]\n```')
    if len(matches) > 1:
        raise PlanError(f'Plan file contains {len(matches)} '
                        f'{PHASES_BLOCK_LABEL} blocks; expected exactly one')
    return matches[0].strip()


def parse_phases_json(block: str) -> Any:
    try:
        return json.loads(block)
    except json.JSONDecodeError as exc:
        raise PlanError(f'Invalid JSON in {PHASES_BLOCK_LABEL} block at line '
                        f'{exc.lineno}: {exc.msg}') from exc


def parse_plan_text(content: str) -> List[Phase]:
    raw = parse_phases_json(extract_phases_block(content))
    assert_valid_phases(raw)
    return [Phase.from_dict(p) for p in raw]


def read_plan_file(path: str) -> str:
    if not os.path.isfile(path):
        raise PlanError(f'Plan file not found: "{os.path.abspath(path)}"')
    try:
        with open(path, 'r', encoding='utf-8') as f:
            return f.read()
    except (OSError, UnicodeDecodeError) as exc:
        raise PlanError(f'Failed to read plan file: {exc}') from exc


def load_plan(path: str) -> List[Phase]:
    """Read, extract and validate the phases of the plan at *path*."""
    return parse_plan_text(read_plan_file(path))


# -- discovery ----------------------------------------------------------------

def _markdown_files(directory: str) -> List[str]:
    found: List[str] = []
    for root, dirs, files in os.walk(directory):
        # pruning in place keeps os.walk out of these directories
        dirs[:] = [d for d in dirs
                   if not d.startswith('.') and d not in SKIPPED_DIRS]
        for name in files:
            if name.endswith('.md'):
                found.append(os.path.join(root, name))
    return found


def _has_phases_block(path: str) -> bool:
    try:
        with open(path, 'r', encoding='utf-8') as f:
            return bool(PHASES_FENCE_PATTERN.search(f.read()))
    except (OSError, UnicodeDecodeError):
        return False


def _mtime(path: str) -> float:
    try:
        return os.stat(path).st_mtime
    except OSError:
        return 0.0


def find_latest_plan(directory: Optional[str] = None) -> str:
    """Absolute path of the most recently modified plan under *directory*."""
    search_dir = os.path.abspath(os.path.expanduser(directory or PLANS_DIR))
    if not os.path.exists(search_dir):
        raise PlanError(f'Directory "{search_dir}" does not exist')
    if not os.path.isdir(search_dir):
        raise PlanError(f'"{search_dir}" is not a directory')

    markdown_files = _markdown_files(search_dir)
    if not markdown_files:
        raise PlanError(f'No markdown files found in "{search_dir}"')

    plans = [p for p in markdown_files if _has_phases_block(p)]
    if not plans:
        raise PlanError(f'No plan files with {PHASES_BLOCK_LABEL} blocks '
                        f'found in "{search_dir}"')
    return max(plans, key=_mtime)
