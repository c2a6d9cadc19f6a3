import re
from typing import List

HASHTAG_RE = re.compile(r"#(\w+)")
MENTION_RE = re.compile(r"@(\w+)")

def _unique_lower(matches: List[str]) -> List[str]:
    return list(dict.fromkeys(match.lower() for match in matches))

def extract_hashtags(text: str) -> List[str]:
    """``"hello #Test #test"`` -> ``["test"]``"""
    return _unique_lower(HASHTAG_RE.findall(text))

def extract_mentions(text: str) -> List[str]:
    return _unique_lower(MENTION_RE.findall(text))
