"""
Markdown 文档模型（按标题分层的树）。

约定：
- 以 `#` 开头的行是标题，级别 = 前导 `#` 的个数
- 标题挂到“深度优先顺序里最后一个级别更低的 section”下面，找不到则挂在根上
- 第一个标题之前的内容属于隐式的 level-0 section
- `str(doc)` 与 `parse` 互为往返：serialize(parse(s)) 是 parse∘serialize 的不动点
"""

from __future__ import annotations

from dataclasses import dataclass
from dataclasses import field


def is_heading(line: str) -> bool:
    return line.startswith("#")


def heading_level(line: str) -> int:
    return len(line) - len(line.lstrip("#"))


@dataclass
class Section:
    level: int = 0
    heading: str = ""
    content_lines: list[str] = field(default_factory=list)
    sub_sections: list[Section] = field(default_factory=list)

    def all_sections(self) -> list[Section]:
        result = [self]
        for sub in self.sub_sections:
            result.extend(sub.all_sections())
        return result

    def find_section_by_heading(self, level: int, heading: str) -> Section | None:
        for section in self.all_sections():
            if section.level == level and section.heading == heading:
                return section
        return None

    def append_content(self, lines: list[str]) -> None:
        self.content_lines.extend(lines)

    def prepend_content(self, lines: list[str]) -> None:
        self.content_lines[:0] = lines

    def append_child(self, child: Section) -> None:
        self.sub_sections.append(child)

    def prepend_child(self, child: Section) -> None:
        self.sub_sections.insert(0, child)

    def __str__(self) -> str:
        result = ""
        if self.level > 0:
            result += "#" * self.level + " " + self.heading + "\n"
        for line in self.content_lines:
            result += line + "\n"
        result = result.strip("\n")
        for sub in self.sub_sections:
            result += "\n" + str(sub)
        return result


class Markdown:
    def __init__(self, sections: list[Section] | None = None) -> None:
        self.sections: list[Section] = sections if sections is not None else []

    @classmethod
    def parse(cls, content: str) -> Markdown:
        doc = cls()
        current: Section | None = None

        for line in content.split("\n"):
            if is_heading(line):
                level = heading_level(line)
                current = Section(level=level, heading=line[level:].strip())

                parent = None
                for candidate in reversed(doc.all_sections()):
                    if candidate.level < level:
                        parent = candidate
                        break

                if parent is None:
                    doc.sections.append(current)
                else:
                    parent.sub_sections.append(current)
                continue

            if current is None:
                current = Section()
                doc.sections.append(current)

            current.content_lines.append(line)

        return doc

    def all_sections(self) -> list[Section]:
        result: list[Section] = []
        for section in self.sections:
            result.extend(section.all_sections())
        return result

    def append_section(self, section: Section) -> None:
        self.sections.append(section)

    def prepend_section(self, section: Section) -> None:
        self.sections.insert(0, section)

    def find_section_by_heading(self, level: int, heading: str) -> Section | None:
        for section in self.all_sections():
            if section.level == level and section.heading == heading:
                return section
        return None

    def find_section_by_heading_prefix(self, level: int, prefix: str) -> Section | None:
        for section in self.all_sections():
            if section.level == level and section.heading.startswith(prefix):
                return section
        return None

    def __str__(self) -> str:
        result = ""
        for section in self.sections:
            result += "\n" + str(section)
            result = result.strip("\n")
        return result.strip()
