"""
模组标识规范化

把原始模组文件名映射为 (规范名, 版本)。

    sodium-0.5.8+mc1.20.1.jar        -> ("sodium", "0.5.8+mc1.20.1")
    sodium-extra-0.5.4+mc1.20.1.jar  -> ("sodium-extra", "0.5.4+mc1.20.1")
    chat_heads-0.14.0-neoforge-1.21  -> ("chat-heads", "0.14.0-1.21")
    cloth-config-15.0.130-fabric.jar -> ("cloth-config", "15.0.130")

合并打包的复合文件名（用 $ 连接，或 a-1.0+b-2.0 形式）无法可靠地归属到
一个或两个模组，会被标记为 is_compound，保留完整文件名作为规范名，交由
人工处理。
"""

import functools
import re
from dataclasses import dataclass
from typing import Iterable, List, Optional, Tuple

from packaging.version import InvalidVersion, Version

MOD_EXTENSIONS = (".jar", ".zip")
DISABLED_SUFFIX = ".disabled"

LOADER_TOKENS = frozenset({"fabric", "forge", "neoforge", "quilt"})
# '+' 之后出现这些词时视为构建/MC 版本限定符，而不是第二个模组
QUALIFIER_WORDS = LOADER_TOKENS | frozenset(
    {"mc", "build", "snapshot", "pre", "rc", "alpha", "beta", "release", "git", "local"}
)

_SPLIT = re.compile(r"([-_+ ])")
_VERSION_TOKEN = re.compile(r"^(?:v|mc)?\d")
_LEADING_WORD = re.compile(r"^[a-z]+")
_NAME_VERSION_TAIL = re.compile(r"[-_](?:v|mc)?\d")


@dataclass(frozen=True)
class ModIdentity:
    """规范化后的模组标识"""

    canonical_name: str
    version: str
    is_compound: bool = False


def strip_extension(filename: str) -> str:
    """去掉 .disabled 与模组扩展名，并转为小写"""
    stem = filename.strip().lower()
    while stem.endswith(DISABLED_SUFFIX):
        stem = stem[: -len(DISABLED_SUFFIX)]
    for ext in MOD_EXTENSIONS:
        if stem.endswith(ext):
            stem = stem[: -len(ext)]
            break
    return stem


def is_compound(stem: str) -> bool:
    """判断文件名是否把多个模组打包在一起"""
    if "$" in stem:
        return True

    for match in re.finditer(r"\+", stem):
        head = stem[: match.start()]
        tail = stem[match.end():]
        # '+' 之前必须已经有一个 name-version 结构
        if not _NAME_VERSION_TAIL.search(head):
            continue
        word = _LEADING_WORD.match(tail)
        if not word or word.group(0) in QUALIFIER_WORDS:
            continue
        if _NAME_VERSION_TAIL.search(tail):
            return True
    return False


def normalize(raw_filename: str) -> ModIdentity:
    """
    规范化模组文件名

    Args:
        raw_filename: 原始文件名（可以带扩展名）

    Returns:
        ModIdentity(canonical_name, version, is_compound)
    """
    stem = strip_extension(raw_filename)
    if not stem:
        return ModIdentity(raw_filename.strip().lower(), "")

    if is_compound(stem):
        return ModIdentity(_join_name(re.split(r"[_ ]", stem)), "", True)

    parts = _SPLIT.split(stem)
    words = parts[0::2]
    seps = [""] + parts[1::2]

    split_at = len(words)
    for index in range(1, len(words)):
        if _VERSION_TOKEN.match(words[index]):
            split_at = index
            break

    name_words = [
        word
        for index, word in enumerate(words[:split_at])
        if word and not (index > 0 and word in LOADER_TOKENS)
    ]
    if not name_words:
        name_words = [w for w in words[:split_at] if w]

    version = ""
    for word, sep in zip(words[split_at:], seps[split_at:]):
        if not word or word in LOADER_TOKENS:
            continue
        version += (sep if version else "") + word

    return ModIdentity(_join_name(name_words), version)


def _join_name(words: Iterable[str]) -> str:
    return "-".join(w for w in words if w)


def _numeric_parts(version: str) -> Tuple[int, ...]:
    return tuple(int(n) for n in re.findall(r"\d+", version))


def _parse_version(version: str) -> Optional[Version]:
    try:
        return Version(version)
    except InvalidVersion:
        return None


def compare_versions(left: str, right: str) -> int:
    """
    比较两个版本字符串

    两者都符合 PEP 440 时使用 packaging 比较，否则按数字段逐个比较，
    最后按字符串比较，保证结果确定。
    """
    left_parsed, right_parsed = _parse_version(left), _parse_version(right)
    if left_parsed is not None and right_parsed is not None:
        if left_parsed != right_parsed:
            return -1 if left_parsed < right_parsed else 1

    left_nums, right_nums = _numeric_parts(left), _numeric_parts(right)
    if left_nums != right_nums:
        return -1 if left_nums < right_nums else 1

    if left == right:
        return 0
    return -1 if left < right else 1


version_key = functools.cmp_to_key(compare_versions)


def highest_version(versions: Iterable[str]) -> Optional[str]:
    ordered: List[str] = sorted(versions, key=version_key)
    return ordered[-1] if ordered else None
