"""
GitHub tracker for taskledger.

Implements the tracker interface the sync engine talks to, on top of the
gh CLI (issues for tasks, a GitHub Project v2 as the board). Every call
shells out with a timeout; any failure surfaces as TrackerError so the
sync engine can collect it per task.
"""

import json
import logging
import re
import subprocess
from pathlib import Path

from taskledger.lib.types import BoardColumnOption, BoardItem, ExternalItem, TrackerError

logger = logging.getLogger(__name__)


# Timeout for GitHub CLI operations (seconds)
GH_TIMEOUT_SECONDS = 30

STATUS_FIELD_NAME = "Status"
ISSUE_URL_RE = re.compile(r'github\.com/([^/]+)/([^/]+)/issues/(\d+)')

ADD_ITEM_MUTATION = """
mutation($projectId: ID!, $contentId: ID!) {
  addProjectV2ItemById(input: {projectId: $projectId, contentId: $contentId}) {
    item { id }
  }
}"""

MOVE_ITEM_MUTATION = """
mutation($projectId: ID!, $itemId: ID!, $fieldId: ID!, $optionId: String!) {
  updateProjectV2ItemFieldValue(input: {
    projectId: $projectId
    itemId: $itemId
    fieldId: $fieldId
    value: {singleSelectOptionId: $optionId}
  }) {
    projectV2Item { id }
  }
}"""

FIELDS_QUERY = """
query($projectId: ID!) {
  node(id: $projectId) {
    ... on ProjectV2 {
      fields(first: 50) {
        nodes {
          ... on ProjectV2SingleSelectField { id name options { id name } }
        }
      }
    }
  }
}"""

# owner_type is "user" or "organization"
ITEMS_QUERY = """
query($owner: String!, $number: Int!, $first: Int!) {
  %s(login: $owner) {
    projectV2(number: $number) {
      items(first: $first) {
        nodes {
          id
          fieldValueByName(name: "Status") {
            ... on ProjectV2ItemFieldSingleSelectValue { name }
          }
          content {
            ... on Issue { number title url }
            ... on DraftIssue { title }
          }
        }
      }
    }
  }
}"""


def parse_issue_url(url: str) -> tuple[str, str, int] | None:
    """Split https://github.com/o/r/issues/42 into ("o", "r", 42)."""
    match = ISSUE_URL_RE.search(url)
    if not match:
        return None
    return match.group(1), match.group(2), int(match.group(3))


def check_gh_cli() -> bool:
    """Check if gh CLI is available and authenticated."""
    try:
        result = subprocess.run(
            ["gh", "auth", "status"],
            capture_output=True,
            text=True,
            timeout=GH_TIMEOUT_SECONDS,
        )
        return result.returncode == 0
    except (FileNotFoundError, subprocess.TimeoutExpired, subprocess.SubprocessError):
        return False


class GitHubTracker:
    """Tracker backed by GitHub issues and a Project v2 board."""

    def __init__(self, repo: str | None = None, cwd: Path | None = None):
        self.repo = repo  # owner/name; None lets gh infer it from the checkout
        self.cwd = cwd
        self._available: bool | None = None

    def _run_gh(self, args: list[str]) -> str:
        """Run gh and return stdout. Raises TrackerError on any failure."""
        cmd = ["gh", *args]
        logger.debug(f"[GH] {' '.join(args[:3])}")
        try:
            result = subprocess.run(
                cmd,
                capture_output=True,
                text=True,
                cwd=str(self.cwd) if self.cwd else None,
                timeout=GH_TIMEOUT_SECONDS,
            )
        except FileNotFoundError:
            raise TrackerError("GitHub CLI (gh) not found") from None
        except subprocess.TimeoutExpired:
            raise TrackerError(f"GitHub CLI timed out after {GH_TIMEOUT_SECONDS}s") from None
        except subprocess.SubprocessError as e:
            raise TrackerError(f"GitHub CLI failed: {e}") from None

        if result.returncode != 0:
            raise TrackerError(result.stderr.strip() or f"gh {args[0]} exited with {result.returncode}")
        return result.stdout.strip()

    def _graphql(self, query: str, **variables) -> dict:
        args = ["api", "graphql", "-f", f"query={query}"]
        for name, value in variables.items():
            # -F coerces numbers; -f keeps ids as strings
            flag = "-F" if isinstance(value, int) else "-f"
            args.extend([flag, f"{name}={value}"])
        output = self._run_gh(args)
        try:
            return json.loads(output)
        except json.JSONDecodeError:
            raise TrackerError("Invalid JSON from gh api graphql") from None

    def _repo_args(self) -> list[str]:
        return ["--repo", self.repo] if self.repo else []

    def available(self) -> bool:
        """gh installed and authenticated. Checked once per tracker."""
        if self._available is None:
            self._available = check_gh_cli()
            if not self._available:
                logger.info("[GH] gh CLI not available or not authenticated")
        return self._available

    def create_item(self, title: str, body: str, labels: list[str] | None = None) -> ExternalItem:
        args = ["issue", "create", "--title", title, "--body", body, *self._repo_args()]
        for label in labels or []:
            args.extend(["--label", label])

        output = self._run_gh(args)
        # gh prints progress lines before the issue URL
        url = output.splitlines()[-1].strip() if output else ""
        parsed = parse_issue_url(url)
        if parsed is None:
            raise TrackerError(f"Unexpected output from gh issue create: {url!r}")
        return ExternalItem(id=str(parsed[2]), url=url)

    def _issue_node_id(self, item_url: str) -> str:
        parsed = parse_issue_url(item_url)
        if parsed is None:
            raise TrackerError(f"Not an issue URL: {item_url}")
        owner, repo, number = parsed
        node_id = self._run_gh(["api", f"repos/{owner}/{repo}/issues/{number}", "--jq", ".node_id"])
        if not node_id:
            raise TrackerError(f"No node id for {item_url}")
        return node_id

    def add_item_to_board(self, board_id: str, item_url: str) -> str:
        """Add an issue to the project. Returns the project item id."""
        content_id = self._issue_node_id(item_url)
        data = self._graphql(ADD_ITEM_MUTATION, projectId=board_id, contentId=content_id)
        item_id = ((data.get("data") or {}).get("addProjectV2ItemById") or {}).get("item", {}).get("id")
        if not item_id:
            raise TrackerError(f"Could not add {item_url} to board {board_id}")
        return item_id

    def move_item(self, board_id: str, item_id: str, field_id: str, option_id: str) -> None:
        self._graphql(
            MOVE_ITEM_MUTATION,
            projectId=board_id,
            itemId=item_id,
            fieldId=field_id,
            optionId=option_id,
        )

    def _list_items(self, owner_type: str, owner: str, board_number: int) -> list[dict] | None:
        data = self._graphql(ITEMS_QUERY % owner_type, owner=owner, number=board_number, first=100)
        project = ((data.get("data") or {}).get(owner_type) or {}).get("projectV2")
        if not project:
            return None
        return (project.get("items") or {}).get("nodes") or []

    def list_board_items(self, owner: str, board_number: int) -> list[BoardItem]:
        """Items on a user's board, falling back to an organization board."""
        try:
            nodes = self._list_items("user", owner, board_number)
        except TrackerError as e:
            logger.debug(f"[GH] user board lookup failed for {owner}: {e}")
            nodes = None
        if nodes is None:
            nodes = self._list_items("organization", owner, board_number) or []

        items = []
        for node in nodes:
            content = node.get("content") or {}
            items.append(BoardItem(
                item_id=node.get("id", ""),
                title=content.get("title", ""),
                status=(node.get("fieldValueByName") or {}).get("name", ""),
                source_ref=content.get("url"),
            ))
        return items

    def get_item(self, item_ref: str) -> dict:
        """Issue title, url, body and state for a number or URL."""
        args = ["issue", "view", str(item_ref), "--json", "number,url,title,body,state"]
        if not str(item_ref).startswith("http"):
            args.extend(self._repo_args())
        output = self._run_gh(args)
        try:
            return json.loads(output)
        except json.JSONDecodeError:
            raise TrackerError(f"Invalid JSON from gh issue view {item_ref}") from None

    def comment_on_item(self, item_ref: str, text: str) -> None:
        args = ["issue", "comment", str(item_ref), "--body", text]
        if not str(item_ref).startswith("http"):
            args.extend(self._repo_args())
        self._run_gh(args)

    def close_item(self, item_ref: str) -> None:
        args = ["issue", "close", str(item_ref)]
        if not str(item_ref).startswith("http"):
            args.extend(self._repo_args())
        self._run_gh(args)

    def get_board_columns(self, board_id: str) -> list[BoardColumnOption]:
        """Options of the board's Status field, in board order."""
        data = self._graphql(FIELDS_QUERY, projectId=board_id)
        nodes = (((data.get("data") or {}).get("node") or {}).get("fields") or {}).get("nodes") or []
        for node in nodes:
            if node.get("name") == STATUS_FIELD_NAME and node.get("options"):
                return [
                    BoardColumnOption(name=opt["name"], option_id=opt["id"], field_id=node["id"])
                    for opt in node["options"]
                ]
        return []
