import functools
import glob
import logging
import os
import re
from pathlib import Path
from typing import Iterable, List, Optional, Pattern, Union

logger = logging.getLogger(__name__)


def _normalize(path: str) -> str:
    return path.replace("\\", "/")


def _expand(pattern: str, root: Path) -> Iterable[str]:
    """展开单个 glob 模式 (支持 **，包含隐藏文件与隐藏目录)，产出相对 root 的文件路径"""
    if not os.path.isabs(pattern):
        pattern = os.path.join(str(root), pattern)
    matches = glob.glob(pattern, recursive=True, include_hidden=True)
    for match in sorted(matches):
        if not os.path.isfile(match):
            continue
        yield os.path.relpath(match, str(root))


@functools.lru_cache(maxsize=256)
def compile_pattern(pattern: str) -> Pattern[str]:
    """
    把 glob 模式编译为正则，规则与 glob.glob 展开一致：

    - `*` / `?` / `[...]` 不跨越 `/`
    - `**/` 匹配零个或多个目录，末尾的 `**` 匹配其下任意深度
    """
    pat = _normalize(pattern)
    i, n = 0, len(pat)
    out = []
    while i < n:
        c = pat[i]
        i += 1
        if c == "*":
            if i < n and pat[i] == "*":
                i += 1
                if i < n and pat[i] == "/":
                    i += 1
                    out.append("(?:.*/)?")
                else:
                    out.append(".*")
            else:
                out.append("[^/]*")
        elif c == "?":
            out.append("[^/]")
        elif c == "[":
            j = i
            if j < n and pat[j] in "!^":
                j += 1
            if j < n and pat[j] == "]":
                j += 1
            j = pat.find("]", j)
            if j < 0:
                out.append(re.escape(c))
                continue
            body = pat[i:j].replace("\\", "\\\\")
            i = j + 1
            if body[:1] in ("!", "^"):
                body = "^" + body[1:]
            out.append(f"(?!/)[{body}]")
        else:
            out.append(re.escape(c))
    return re.compile("".join(out), re.DOTALL)


def is_excluded(rel_path: str, exclude: Iterable[str]) -> bool:
    normalized = _normalize(rel_path)
    return any(compile_pattern(pattern).fullmatch(normalized) for pattern in exclude)


def resolve_patterns(
    patterns: Iterable[str],
    exclude: Iterable[str] = (),
    root: Optional[Union[str, Path]] = None,
) -> List[str]:
    """
    把 include 模式解析为去重后的相对路径列表

    Args:
        patterns: glob 包含模式，相对 root 解析
        exclude: glob 排除模式，按相对路径匹配，规则与包含模式相同
        root: 基准目录，默认为当前工作目录

    Returns:
        相对路径列表，按首次出现顺序去重 (大小写敏感)
    """
    base = Path(root) if root is not None else Path.cwd()
    exclude = list(exclude)
    seen = set()
    results = []
    for pattern in patterns:
        matched = 0
        for rel_path in _expand(pattern, base):
            if rel_path in seen or is_excluded(rel_path, exclude):
                continue
            seen.add(rel_path)
            results.append(rel_path)
            matched += 1
        if not matched:
            logger.debug(f"模式未匹配到新文件: {pattern}")
    return results
