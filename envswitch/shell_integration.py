import platform
import shutil
from pathlib import Path
from typing import Optional

import structlog

from .errors import ConfigIoError, UnsupportedShell
from .scripts import ShellTarget

logger = structlog.get_logger(__name__)

INSTALLABLE_SHELLS = [ShellTarget.BASH, ShellTarget.ZSH, ShellTarget.FISH]

_POSIX_HOOK = '''# envswitch shell integration for {shell}
# `envswitch <java|cc|llm> use NAME` is evaluated in the current shell

unalias envswitch 2>/dev/null || true

envswitch() {{
    if [ "$#" -ge 2 ] && [ "$2" = "use" ]; then
        case "$1" in
            java|cc|llm)
                local arg
                for arg in "$@"; do
                    if [ "$arg" = "--help" ] || [ "$arg" = "-h" ] || [ "$arg" = "--json" ]; then
                        command envswitch "$@"
                        return $?
                    fi
                done

                local switch_commands
                switch_commands="$(command envswitch "$@" --shell {shell})" || return $?
                eval "$switch_commands"
                return 0
                ;;
        esac
    fi
    command envswitch "$@"
}}

# apply default environments
eval "$(command envswitch env --shell {shell})"'''

_FISH_HOOK = '''# envswitch shell integration for fish
# `envswitch <java|cc|llm> use NAME` is evaluated in the current shell

function envswitch
    if test (count $argv) -ge 2; and test "$argv[2]" = "use"; and contains -- $argv[1] java cc llm
        if contains -- --help $argv; or contains -- -h $argv; or contains -- --json $argv
            command envswitch $argv
            return $status
        end

        set -l switch_commands (command envswitch $argv --shell fish); or return $status
        string join \\n -- $switch_commands | source
    else
        command envswitch $argv
    end
end

# apply default environments
command envswitch env --shell fish | source'''

_POWERSHELL_HOOK = '''# envswitch shell integration for PowerShell
# `envswitch <java|cc|llm> use NAME` is evaluated in the current session

function envswitch {
    $exe = (Get-Command envswitch -CommandType Application | Select-Object -First 1).Source
    $isUse = $args.Count -ge 2 -and $args[1] -eq 'use' -and @('java', 'cc', 'llm') -contains $args[0]
    $isHelp = $args -contains '--help' -or $args -contains '-h' -or $args -contains '--json'

    if ($isUse -and -not $isHelp) {
        $switchCommands = & $exe @args --shell powershell
        if ($LASTEXITCODE -ne 0) { return }
        Invoke-Expression ($switchCommands -join "`n")
    } else {
        & $exe @args
    }
}

# apply default environments
$envswitchExe = (Get-Command envswitch -CommandType Application | Select-Object -First 1).Source
Invoke-Expression ((& $envswitchExe env --shell powershell) -join "`n")'''

_CMD_HOOK = '''@rem envswitch shell integration for cmd.exe
@rem run from AutoRun; switch with: envswitch-use java NAME
@envswitch env --shell cmd > "%TEMP%\\envswitch-env.cmd" && call "%TEMP%\\envswitch-env.cmd"
@doskey envswitch-use=envswitch $1 use $2 --shell cmd $G "%TEMP%\\envswitch-use.cmd" $T call "%TEMP%\\envswitch-use.cmd"'''


def get_hook_code(shell: ShellTarget) -> str:
    """获取 shell hook 代码（envswitch hook 命令的输出）"""
    if shell in (ShellTarget.BASH, ShellTarget.ZSH):
        return _POSIX_HOOK.format(shell=shell.value)
    elif shell is ShellTarget.FISH:
        return _FISH_HOOK
    elif shell is ShellTarget.POWERSHELL:
        return _POWERSHELL_HOOK
    return _CMD_HOOK


class ShellIntegration:
    def __init__(self, shell: ShellTarget, home: Optional[Path] = None):
        if shell not in INSTALLABLE_SHELLS:
            raise UnsupportedShell(shell.value, [s.value for s in INSTALLABLE_SHELLS])
        self.shell = shell
        self.home = home or Path.home()
        self.system = platform.system()
        self.marker_start = "# >>> envswitch shell integration >>>"
        self.marker_end = "# <<< envswitch shell integration <<<"

    def get_shell_config_path(self) -> Path:
        """获取shell配置文件路径"""
        if self.shell is ShellTarget.ZSH:
            return self.home / '.zshrc'
        elif self.shell is ShellTarget.FISH:
            return self.home / '.config' / 'fish' / 'config.fish'

        # 优先选择 .bashrc，如果不存在则使用 .bash_profile
        bashrc = self.home / '.bashrc'
        if bashrc.exists() or self.system != 'Darwin':
            return bashrc
        return self.home / '.bash_profile'

    def _read(self, path: Path) -> str:
        try:
            return path.read_text(encoding='utf-8')
        except FileNotFoundError:
            return ""
        except OSError as e:
            raise ConfigIoError(f"cannot read {path}: {e}") from e

    def _write(self, path: Path, content: str):
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(content, encoding='utf-8')
        except OSError as e:
            raise ConfigIoError(f"cannot write {path}: {e}") from e

    def is_installed(self) -> bool:
        """检查是否已经安装"""
        return self.marker_start in self._read(self.get_shell_config_path())

    def install(self, force: bool = False) -> bool:
        """安装shell集成，已安装且没有 force 时返回 False"""
        config_path = self.get_shell_config_path()

        if self.is_installed():
            if not force:
                return False
            self.uninstall()

        existing_content = self._read(config_path)

        # 备份原文件
        if config_path.exists():
            backup_path = config_path.with_name(config_path.name + '.envswitch.backup')
            try:
                shutil.copy2(config_path, backup_path)
            except OSError as e:
                raise ConfigIoError(f"cannot back up {config_path}: {e}") from e

        content_to_add = f'''
{self.marker_start}
{get_hook_code(self.shell)}
{self.marker_end}
'''

        # bash 的交互式检查之后的内容在非交互 shell 中不会执行，函数定义放在它前面
        lines = existing_content.split('\n')
        insert_pos = next((i for i, line in enumerate(lines) if 'case $- in' in line), None)
        if self.shell is ShellTarget.BASH and insert_pos is not None:
            lines.insert(insert_pos, content_to_add.strip())
            new_content = '\n'.join(lines)
        else:
            if existing_content and not existing_content.endswith('\n'):
                existing_content += '\n'
            new_content = existing_content + content_to_add

        self._write(config_path, new_content)
        logger.info("shell integration installed", shell=self.shell.value, path=str(config_path))
        return True

    def uninstall(self) -> bool:
        """卸载shell集成，没有安装时返回 False"""
        config_path = self.get_shell_config_path()
        content = self._read(config_path)

        if self.marker_start not in content:
            return False
        if self.marker_end not in content:
            # 只有开始标记，文件可能被手动改过
            raise ConfigIoError(
                f"{config_path} has an incomplete envswitch block",
                f"remove the lines after '{self.marker_start}' manually",
            )

        new_lines = []
        in_marker_block = False
        for line in content.split('\n'):
            if self.marker_start in line:
                in_marker_block = True
                continue
            elif self.marker_end in line:
                in_marker_block = False
                continue

            if not in_marker_block:
                new_lines.append(line)

        self._write(config_path, '\n'.join(new_lines))
        logger.info("shell integration removed", shell=self.shell.value, path=str(config_path))
        return True
