from __future__ import annotations

from dataclasses import dataclass

from metal_robot.config import ConfigError
from metal_robot.patchers.base import FileReader
from metal_robot.patchers.base import FileWriter
from metal_robot.patchers.base import PatchError
from metal_robot.patchers.base import check_template


@dataclass(frozen=True)
class LinePatch:
    """把文件第 `line` 行（从 1 开始）整行替换成 value 或 `template % value`。"""

    file: str
    line: int
    template: str | None = None

    def validate(self) -> None:
        if not self.file:
            raise ConfigError("line-patch needs a file")
        if self.line < 1:
            raise ConfigError(f"line-patch line numbers start at 1, got {self.line}")
        check_template(self.template)

    def apply(self, read_file: FileReader, write_file: FileWriter, value: str) -> None:
        content = read_file(self.file).decode("utf-8")
        lines = content.split("\n")
        if self.line > len(lines):
            raise PatchError(f"line {self.line} does not exist in {self.file}, file has {len(lines)} lines")

        new_line = value
        if self.template is not None:
            new_line = self.template % value
        lines[self.line - 1] = new_line

        write_file(self.file, "\n".join(lines).encode("utf-8"))
