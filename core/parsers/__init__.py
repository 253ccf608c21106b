# 结构文件解析
from .mmcif import (
    MmcifSyntaxError,
    Token,
    TokenKind,
    expand_chain_ids,
    join_text_field,
    parse_chains,
    tokenize,
)

__all__ = [
    "MmcifSyntaxError",
    "Token",
    "TokenKind",
    "expand_chain_ids",
    "join_text_field",
    "parse_chains",
    "tokenize",
]
