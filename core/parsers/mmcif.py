"""
mmCIF 链信息解析

只关心 _entity_poly 类别: 链 ID（pdbx_strand_id）、聚合物类型、单字母序列。
两步处理:
1. tokenize(): 逐行切分为 token 流（数据块、loop_、标签、值），
   支持引号值、# 注释、以 ; 开头的多行文本字段
2. 状态机: 寻找 loop_ -> 读取列头 -> 读取行

列按名称映射，列的先后顺序不影响结果；单实体文件中 _entity_poly
以键值对形式出现（没有 loop_），同样可以识别。
解析失败只记日志并返回空列表，不向上抛出。
"""

import re
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Iterator, List, Optional

import structlog

from core.models.structure import Chain, chain_type_from_polymer

logger = structlog.get_logger(__name__)

ENTITY_POLY_PREFIX = "_entity_poly."
STRAND_ID_TAG = "_entity_poly.pdbx_strand_id"
TYPE_TAG = "_entity_poly.type"
CANONICAL_SEQUENCE_TAG = "_entity_poly.pdbx_seq_one_letter_code_can"
SEQUENCE_TAG = "_entity_poly.pdbx_seq_one_letter_code"

# CIF 中表示未知 / 不适用
NULL_VALUES = ("?", ".")

MODIFIED_RESIDUE_PATTERN = re.compile(r"\([A-Za-z0-9]+\)")


class MmcifSyntaxError(ValueError):
    """mmCIF 文本格式错误"""


class TokenKind(str, Enum):
    DATA_BLOCK = "data_block"
    LOOP = "loop"
    TAG = "tag"
    VALUE = "value"


@dataclass(frozen=True)
class Token:
    kind: TokenKind
    value: Optional[str]
    line: int


def join_text_field(lines: List[str]) -> str:
    """
    合并 ; 文本字段的各行

    每行去掉首尾空白后直接拼接，用于跨行的序列字段。
    """
    return "".join(line.strip() for line in lines)


def expand_chain_ids(value: Optional[str]) -> List[str]:
    """把 "A,B, C" 展开为 ["A", "B", "C"]"""
    if not value:
        return []
    return [part.strip() for part in value.split(",") if part.strip()]


def clean_sequence(value: str) -> str:
    """去空白、修饰残基 (MSE) 记为 X、转大写"""
    collapsed = MODIFIED_RESIDUE_PATTERN.sub("X", value)
    return "".join(collapsed.split()).upper()


def _tokenize_line(line: str, line_no: int) -> Iterator[Token]:
    pos = 0
    n = len(line)
    while pos < n:
        ch = line[pos]
        if ch.isspace():
            pos += 1
            continue
        if ch == "#":
            return

        if ch in ("'", '"'):
            # 引号只有在后面跟空白或行尾时才算结束
            end = pos + 1
            while end < n and not (line[end] == ch and (end + 1 == n or line[end + 1].isspace())):
                end += 1
            if end >= n:
                raise MmcifSyntaxError(f"Unterminated quoted value on line {line_no}")
            yield Token(TokenKind.VALUE, line[pos + 1:end], line_no)
            pos = end + 1
            continue

        end = pos
        while end < n and not line[end].isspace():
            end += 1
        word = line[pos:end]
        pos = end

        lowered = word.lower()
        if lowered.startswith("data_"):
            yield Token(TokenKind.DATA_BLOCK, word[5:], line_no)
        elif lowered == "loop_":
            yield Token(TokenKind.LOOP, None, line_no)
        elif word.startswith("_"):
            yield Token(TokenKind.TAG, lowered, line_no)
        elif word in NULL_VALUES:
            yield Token(TokenKind.VALUE, None, line_no)
        else:
            yield Token(TokenKind.VALUE, word, line_no)


def tokenize(text: str) -> Iterator[Token]:
    """
    把 mmCIF 文本切分为 token 流

    Raises:
        MmcifSyntaxError: 引号或文本字段未闭合
    """
    lines = text.splitlines()
    index = 0
    while index < len(lines):
        line = lines[index]
        if line.startswith(";"):
            start = index
            field_lines = [line[1:]]
            index += 1
            while index < len(lines) and not lines[index].startswith(";"):
                field_lines.append(lines[index])
                index += 1
            if index >= len(lines):
                raise MmcifSyntaxError(f"Unterminated text field starting on line {start + 1}")
            yield Token(TokenKind.VALUE, join_text_field(field_lines), start + 1)
            # 结束行 ; 之后可能还有内容
            yield from _tokenize_line(lines[index][1:], index + 1)
            index += 1
            continue
        yield from _tokenize_line(line, index + 1)
        index += 1


class _ParserState(Enum):
    SEEKING_LOOP = "seeking_loop"
    READING_HEADERS = "reading_headers"
    READING_ROWS = "reading_rows"


def _is_chain_block(headers: List[str]) -> bool:
    return STRAND_ID_TAG in headers and TYPE_TAG in headers


def find_entity_poly_rows(tokens: Iterator[Token]) -> List[Dict[str, Optional[str]]]:
    """
    从 token 流中找出 _entity_poly 的各行

    Returns:
        每行一个 {标签: 值} 字典；找不到合格的块时返回空列表
    """
    state = _ParserState.SEEKING_LOOP
    headers: List[str] = []
    row: List[Optional[str]] = []
    rows: List[Dict[str, Optional[str]]] = []
    pending_tag: Optional[str] = None
    pairs: Dict[str, Optional[str]] = {}

    for token in tokens:
        if state is _ParserState.READING_HEADERS:
            if token.kind is TokenKind.TAG:
                headers.append(token.value)
                continue
            if token.kind is TokenKind.VALUE and _is_chain_block(headers):
                state = _ParserState.READING_ROWS
            else:
                state = _ParserState.SEEKING_LOOP
                headers = []

        if state is _ParserState.READING_ROWS:
            if token.kind is TokenKind.VALUE:
                row.append(token.value)
                if len(row) == len(headers):
                    rows.append(dict(zip(headers, row)))
                    row = []
                continue
            break

        # SEEKING_LOOP
        if token.kind is TokenKind.LOOP:
            state = _ParserState.READING_HEADERS
            headers = []
            pending_tag = None
        elif token.kind is TokenKind.TAG:
            pending_tag = token.value
        elif token.kind is TokenKind.VALUE:
            if pending_tag and pending_tag.startswith(ENTITY_POLY_PREFIX):
                pairs[pending_tag] = token.value
            pending_tag = None
        else:
            pending_tag = None

    if row:
        logger.warning("mmcif_incomplete_row", expected=len(headers), received=len(row))
    if rows:
        return rows
    if _is_chain_block(list(pairs)):
        return [pairs]
    return []


def _row_sequence(row: Dict[str, Optional[str]]) -> Optional[str]:
    raw = row.get(CANONICAL_SEQUENCE_TAG) or row.get(SEQUENCE_TAG)
    if not raw:
        return None
    sequence = clean_sequence(raw)
    return sequence or None


def rows_to_chains(rows: List[Dict[str, Optional[str]]]) -> List[Chain]:
    """每行按链 ID 展开为多条 Chain，长度取自清洗后的序列"""
    chains: List[Chain] = []
    for row in rows:
        chain_type = chain_type_from_polymer(row.get(TYPE_TAG))
        sequence = _row_sequence(row)
        for chain_id in expand_chain_ids(row.get(STRAND_ID_TAG)):
            chains.append(
                Chain(
                    id=chain_id,
                    type=chain_type,
                    sequence=sequence,
                    length=len(sequence) if sequence is not None else None,
                )
            )
    return chains


def parse_chains(text: str, *, pdb_id: Optional[str] = None) -> List[Chain]:
    """
    解析 mmCIF 文本中的链信息

    Args:
        text: mmCIF 文件内容
        pdb_id: 仅用于日志

    Returns:
        Chain 列表；没有聚合物块或解析失败时为空列表
    """
    try:
        rows = find_entity_poly_rows(tokenize(text))
        chains = rows_to_chains(rows)
    except Exception as e:
        logger.warning("mmcif_parse_failed", pdb_id=pdb_id, error=str(e))
        return []

    if not chains:
        logger.info("mmcif_no_chain_block", pdb_id=pdb_id)
    return chains
