"""
tasks.md parser for taskledger.

Extracts tasks from a migration's task log. The log is a hand-edited
markdown document, so parsing is permissive: lines that don't look like
a task are ignored rather than rejected.
"""

import re
from dataclasses import dataclass, field
from pathlib import Path

from taskledger.lib.state_files import write_text_atomic
from taskledger.lib.types import (
    STATUS_BLOCKED,
    STATUS_COMPLETED,
    STATUS_PENDING,
    Task,
)

TASK_RE = re.compile(r'^- \[([ xX])\] (T(\d{3})-(\d{3}))\s+(.+?)\s*$')
TASK_ID_RE = re.compile(r'^T(\d{3})-(\d{3})$')
LEADING_TAG_RE = re.compile(r'^\[([\w-]+)\]\s*')
CODE_SPAN_RE = re.compile(r'`[^`]+`')
BLOCKED_TAG = "[BLOCKED]"
BLOCKED_TAG_RE = re.compile(r'\[blocked\]\s*', re.IGNORECASE)

TASKS_FILE = "tasks.md"


@dataclass
class ParseResult:
    tasks: list[Task] = field(default_factory=list)

    @property
    def completed(self) -> int:
        return sum(1 for t in self.tasks if t.status == STATUS_COMPLETED)

    @property
    def pending(self) -> list[Task]:
        """Tasks not yet done (blocked tasks included)."""
        return [t for t in self.tasks if t.status != STATUS_COMPLETED]

    @property
    def total(self) -> int:
        return len(self.tasks)

    def get(self, task_id: str) -> Task | None:
        for task in self.tasks:
            if task.id == task_id:
                return task
        return None


@dataclass
class TaskInput:
    """A task to append: free-text description plus optional story label."""
    description: str
    story: str | None = None

    @classmethod
    def from_dict(cls, data: dict) -> "TaskInput":
        description = str(data.get("description", "")).strip()
        if not description:
            raise ValueError("Task description must not be empty")
        story = data.get("story")
        return cls(description=description, story=str(story).strip() if story else None)


def parse_task_id(task_id: str) -> tuple[str, int] | None:
    """Split T001-002 into ("001", 2). Returns None for malformed ids."""
    match = TASK_ID_RE.match(task_id)
    if not match:
        return None
    return match.group(1), int(match.group(2))


def format_task_id(migration_id: str, number: int) -> str:
    return f"T{migration_id}-{number:03d}"


def strip_code_spans(text: str) -> str:
    """Remove `inline code` fragments and collapse the leftover whitespace."""
    return " ".join(CODE_SPAN_RE.sub("", text).split())


def _split_tags(description: str) -> tuple[list[str], str]:
    """Peel leading [tags] off a description."""
    tags = []
    rest = description
    while True:
        match = LEADING_TAG_RE.match(rest)
        if not match:
            break
        tags.append(match.group(1))
        rest = rest[match.end():]
    return tags, rest


def parse_task_line(line: str, line_number: int = 0) -> Task | None:
    """Parse a single line. Returns None if the line isn't a task."""
    match = TASK_RE.match(line)
    if not match:
        return None

    checkmark, task_id, migration_id, seq, raw = match.groups()
    tags, rest = _split_tags(raw)
    story = next((t for t in tags if t.lower() != "blocked"), None)

    if checkmark.lower() == "x":
        status = STATUS_COMPLETED
    elif "[blocked]" in raw.lower():
        status = STATUS_BLOCKED
    else:
        status = STATUS_PENDING

    description = strip_code_spans(BLOCKED_TAG_RE.sub("", rest))

    return Task(
        id=task_id,
        migration_id=migration_id,
        sequence=int(seq),
        description=description,
        raw_description=raw,
        status=status,
        story=story,
        line_number=line_number,
    )


def parse_tasks(text: str) -> ParseResult:
    """Parse task log text. Pure function of its input.

    Every line is matched on its own; there is no block state, so a
    description containing markup can never hide the lines after it.
    """
    result = ParseResult()

    for lineno, line in enumerate(text.splitlines(), 1):
        task = parse_task_line(line, lineno)
        if task:
            result.tasks.append(task)

    return result


def next_task_number(text: str, migration_id: str) -> int:
    """Next free sequence number for a migration.

    Scans every occurrence of the id pattern, not just well-formed task
    lines, so a number is never handed out twice even if a line was
    mangled by hand.
    """
    pattern = re.compile(rf'T{re.escape(migration_id)}-(\d{{3}})')
    highest = 0
    for match in pattern.finditer(text):
        highest = max(highest, int(match.group(1)))
    return highest + 1


def format_task_line(task_id: str, task: TaskInput) -> str:
    story = f"[{task.story}] " if task.story else ""
    return f"- [ ] {task_id} {story}{task.description}"


def set_task_marker(text: str, task_id: str, status: str) -> str | None:
    """Rewrite one task line for the given status.

    completed -> checked; blocked -> unchecked with a [BLOCKED] tag;
    anything else -> unchecked without the tag.

    Returns the new text, or None if the task isn't in the log.
    """
    lines = text.split("\n")
    for i, line in enumerate(lines):
        match = TASK_RE.match(line)
        if not match or match.group(2) != task_id:
            continue

        raw = match.group(5)
        if status == STATUS_COMPLETED:
            lines[i] = f"- [x] {task_id} {raw}"
        elif status == STATUS_BLOCKED:
            if "[blocked]" not in raw.lower():
                raw = f"{BLOCKED_TAG} {raw}"
            lines[i] = f"- [ ] {task_id} {raw}"
        else:
            lines[i] = f"- [ ] {task_id} {BLOCKED_TAG_RE.sub('', raw).strip()}"
        return "\n".join(lines)

    return None


def render_task_log(migration_id: str, timestamp: str, parent: str | None) -> str:
    """Skeleton for a new migration's task log."""
    return f"""# Tasks - Migration {migration_id}

**Migration:** {migration_id}
**Timestamp:** {timestamp}
**Parent:** {parent or 'none'}

## Tasks

<!-- Tasks are appended below by `ledger tasks add`.
Format: - [ ] T<migration>-<number> [story] Task description -->

"""


class MarkdownTaskLedger:
    """Task log backing store: one tasks.md per migration directory.

    The migration manager and board projector only talk to this interface,
    so a structured store can replace the markdown file without touching them.
    """

    filename = TASKS_FILE

    def path(self, migration_dir: Path) -> Path:
        return migration_dir / self.filename

    def exists(self, migration_dir: Path) -> bool:
        return self.path(migration_dir).exists()

    def create(self, migration_dir: Path, migration_id: str, timestamp: str, parent: str | None) -> Path:
        migration_dir.mkdir(parents=True, exist_ok=True)
        path = self.path(migration_dir)
        if not path.exists():
            write_text_atomic(path, render_task_log(migration_id, timestamp, parent))
        return path

    def read(self, migration_dir: Path) -> str:
        path = self.path(migration_dir)
        if not path.exists():
            raise FileNotFoundError(f"Task log not found: {path}")
        return path.read_text()

    def parse(self, migration_dir: Path) -> ParseResult:
        return parse_tasks(self.read(migration_dir))

    def append(self, migration_dir: Path, migration_id: str, inputs: list[TaskInput]) -> list[Task]:
        """Append tasks with fresh ids. Returns the new tasks."""
        content = self.read(migration_dir)
        number = next_task_number(content, migration_id)

        lines = []
        for item in inputs:
            lines.append(format_task_line(format_task_id(migration_id, number), item))
            number += 1

        separator = "" if content.endswith("\n") else "\n"
        new_content = content + separator + "\n".join(lines) + "\n"
        write_text_atomic(self.path(migration_dir), new_content)

        return [parse_task_line(line) for line in lines]

    def set_status(self, migration_dir: Path, task_id: str, status: str) -> bool:
        """Rewrite a task's marker. Returns False if the task isn't in the log."""
        new_content = set_task_marker(self.read(migration_dir), task_id, status)
        if new_content is None:
            return False
        write_text_atomic(self.path(migration_dir), new_content)
        return True
