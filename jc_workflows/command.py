"""
Helpers to set up Job's command.
"""

# commands that declare functions that retry commands, handling transitive errors
# like several jobs reading the same GVCF at once
RETRY_CMD = """\
function fail {
  echo $1 >&2
  exit 1
}

function retry {
  local n_attempts=10
  local delay=30
  local n=1
  while ! eval "$@"; do
    if [[ $n -lt $n_attempts ]]; then
      ((n++))
      echo "Command failed. Attempt $n/$n_attempts after ${delay}s..."
      sleep $delay;
    else
      fail "The command has failed after $n attempts."
    fi
  done
}
"""

# command that monitors the job storage space
MONITOR_SPACE_CMD = 'df -h .; du -sh .'


def command(
    cmd: str | list[str],
    monitor_space: bool = False,
    define_retry_function: bool = False,
) -> str:
    """
    Wraps a command for a job.

    @param cmd: command to wrap (can be a list of commands)
    @param monitor_space: print the disk usage before and after the command
    @param define_retry_function: when set, adds a bash function `retry` that attempts
        to redo a command with a pause of 30 seconds
    """
    if isinstance(cmd, list):
        cmd = '\n'.join(cmd)

    # one command per line, without indentation or repeated spaces
    cmd = '\n'.join(' '.join(line.split()) for line in cmd.split('\n'))

    parts = ['set -o pipefail', 'set -ex']
    if define_retry_function:
        parts.append(RETRY_CMD)
    if monitor_space:
        parts.append(MONITOR_SPACE_CMD)
    parts.append(cmd.strip())
    if monitor_space:
        parts.append(MONITOR_SPACE_CMD)
    return '\n'.join(parts) + '\n'
