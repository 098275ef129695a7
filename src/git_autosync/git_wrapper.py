import logging
import subprocess
from dataclasses import dataclass
from pathlib import Path

from .constants import APP_NAME, UNMERGED_CODES

logger = logging.getLogger(APP_NAME)


@dataclass(frozen=True)
class StatusEntry:
    """One path reported by `git status --porcelain`.

    Attributes:
        path (str): The path relative to the repository root (new path for renames).
        index (str): The index (staged) status letter.
        worktree (str): The working tree status letter.
    """

    path: str
    index: str
    worktree: str

    @property
    def is_merge(self) -> bool:
        return f"{self.index}{self.worktree}" in UNMERGED_CODES

    @property
    def is_untracked(self) -> bool:
        return self.index == "?" and self.worktree == "?"


class GitRepo:
    """A wrapper around the Git command-line interface for a specific repository.

    This class provides methods to execute the Git operations the sync engine
    needs using `subprocess`, abstracting away the command construction and
    output handling. All methods are blocking.

    Attributes:
        path (Path): The file system path to the repository root.
    """

    def __init__(self, path: Path):
        """Initializes the GitRepo instance.

        Args:
            path (Path): The path to the repository root directory.

        Raises:
            ValueError: If the specified path does not contain a .git entry.
        """
        self.path = path
        if not (self.path / ".git").exists():
            raise ValueError(f"Not a git repository: {self.path}")

    def _run(
        self,
        args: list[str],
        capture: bool = True,
        env: dict | None = None,
        strip: bool = True,
    ) -> str:
        """Executes a Git command within the repository context.

        Args:
            args (list[str]): A list of arguments to pass to the git command.
            capture (bool, optional):   Whether to capture and return stdout.
                                        Defaults to True.
            env (Optional[dict], optional): Environment variables to pass to the
                                            subprocess. Defaults to None.
            strip (bool, optional): Whether to strip surrounding whitespace from
                                    the output. Defaults to True.

        Returns:
            str:    The stdout of the command if capture is True,
                    otherwise an empty string.

        Raises:
            RuntimeError: If the git command returns a non-zero exit code.
        """
        try:
            res = subprocess.run(
                ["git", *args],
                cwd=self.path,
                capture_output=capture,
                text=True,
                check=True,
                env=env,
            )
        except subprocess.CalledProcessError as e:
            raise RuntimeError(f"Git error: {e.stderr or e}") from e
        if not capture:
            return ""
        return res.stdout.strip() if strip else res.stdout

    def current_branch(self) -> str | None:
        """Retrieves the name of the currently checked-out branch.

        Returns:
            str | None: The branch name, or None when HEAD is detached.
        """
        return self._run(["branch", "--show-current"]) or None

    def status_entries(self) -> list[StatusEntry]:
        """Parses `git status --porcelain -z` into status entries.

        Renamed and copied entries report their new path.

        Returns:
            list[StatusEntry]: One entry per changed path.
        """
        output = self._run(
            ["status", "--porcelain=v1", "-z", "--untracked-files=all"], strip=False
        )
        tokens = output.split("\0")
        entries = []
        i = 0
        while i < len(tokens):
            token = tokens[i]
            i += 1
            if len(token) < 4:
                continue
            x, y, path = token[0], token[1], token[3:]
            if x in "RC":
                # The original path follows as its own token.
                i += 1
            entries.append(StatusEntry(path=path, index=x, worktree=y))
        return entries

    def list_refs(self, pattern: str | None = None) -> list[str]:
        """Lists references, optionally restricted to a pattern.

        Args:
            pattern (str | None): The glob pattern to match (e.g., 'refs/remotes/').

        Returns:
            list[str]: A list of matching reference names.
        """
        cmd = ["for-each-ref", "--format=%(refname)"]
        if pattern:
            cmd.append(pattern)
        try:
            output = self._run(cmd)
            return output.splitlines() if output else []
        except Exception as e:
            logger.warning(f"Git error listing refs for {pattern or 'all'}: {e}")
            return []

    def exists_in_head(self, path: str) -> bool:
        """Checks whether a path exists in the last commit."""
        try:
            self._run(["cat-file", "-e", f"HEAD:{path}"])
        except RuntimeError:
            return False
        return True

    def diff_head(self, path: str) -> str:
        """Returns the diff of a single path against HEAD.

        Paths known to HEAD or to the index (including staged deletions) are
        diffed against HEAD. Untracked files have no HEAD counterpart, so
        they are diffed against the empty file instead.

        Args:
            path (str): The path relative to the repository root.

        Returns:
            str: The unified diff text (empty when unchanged).
        """
        if self.exists_in_head(path) or self._run(["ls-files", "--", path]):
            return self._run(["diff", "HEAD", "--", path], strip=False)
        try:
            return self._run(
                ["diff", "--no-index", "--", "/dev/null", path], strip=False
            )
        except RuntimeError as e:
            # --no-index exits 1 when the files differ.
            cause = e.__cause__
            if isinstance(cause, subprocess.CalledProcessError) and cause.returncode == 1:
                return cause.stdout or ""
            raise

    def add_all(self) -> None:
        """
        Stages all changes (modified, deleted, and untracked files)
        in the working directory.
        """
        self._run(["add", "-A"], capture=False)

    def commit(
        self, message: str, no_verify: bool = False, env: dict | None = None
    ) -> None:
        """Creates a new commit with the provided message.

        Args:
            message (str): The commit message.
            no_verify (bool, optional): Whether to bypass pre-commit hooks
                                        (`--no-verify`). Defaults to False.
            env (Optional[dict], optional): Environment for the commit process,
                                            e.g. carrying GIT_AUTHOR_DATE.
        """
        cmd = ["commit", "-m", message]
        if no_verify:
            cmd.append("--no-verify")
        self._run(cmd, env=env)

    def push(
        self,
        remote: str,
        branch: str | None = None,
        follow_tags: bool = False,
        force_mode: str | None = None,
    ) -> None:
        """Pushes a branch to a remote.

        Args:
            remote (str): The remote name.
            branch (str | None): The branch to push; the configured default when None.
            follow_tags (bool): Whether to also push annotated tags (`--follow-tags`).
            force_mode (str | None): Either '--force' or '--force-with-lease'.
        """
        cmd = ["push"]
        if follow_tags:
            cmd.append("--follow-tags")
        if force_mode:
            cmd.append(force_mode)
        cmd.append(remote)
        if branch:
            cmd.append(branch)
        self._run(cmd)

    def pull(self) -> None:
        """Pulls the tracked upstream into the current branch."""
        self._run(["pull"])
