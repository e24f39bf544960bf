from __future__ import annotations

FENCE = "```"


class NoSuchBlockError(LookupError):
    pass


def split_lines(text: str) -> list[str]:
    return text.replace("\r\n", "\n").split("\n")


def extract_annotated_block(annotation: str, text: str) -> str:
    """返回第一个 ```<annotation> 代码块的内容（去掉首尾空白）。"""
    _, found, rest = text.partition(FENCE + annotation)
    if not found:
        raise NoSuchBlockError(annotation)

    content, found, _ = rest.partition(FENCE)
    if not found:
        raise NoSuchBlockError(annotation)

    return content.strip()


def to_list_item(text: str) -> list[str]:
    """多行文本 -> 一个列表项：首行 `* `，续行缩进两个空格。"""
    result: list[str] = []
    for index, line in enumerate(split_lines(text)):
        if index == 0:
            result.append("* " + line)
        else:
            result.append("  " + line)
    return result


def strip_html_comments(text: str) -> str:
    result = text
    while True:
        before, found, after_start = result.partition("<!--")
        if not found:
            break
        _, found, after = after_start.partition("-->")
        if not found:
            break
        result = before + after
    return result
