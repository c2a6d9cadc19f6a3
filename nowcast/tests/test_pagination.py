import base64
from datetime import datetime

import pytest

from nowcast.utils.pagination import Cursor, decode_cursor, encode_cursor
from nowcast.utils.text import extract_hashtags, extract_mentions

def test_cursor_format_is_base64_of_millis_and_id():
    created_at = datetime(2024, 1, 2, 3, 4, 5, 678000)
    cursor = encode_cursor(created_at, 42)

    assert base64.b64decode(cursor).decode() == "1704164645678_42"
    assert decode_cursor(cursor) == Cursor(created_at=created_at, id=42)

@pytest.mark.parametrize("raw", [
    None,
    "",
    "not base64!!",
    base64.b64encode(b"12345").decode(),           # no separator
    base64.b64encode(b"1_2_3").decode(),           # too many parts
    base64.b64encode(b"abc_12").decode(),          # non-numeric timestamp
    base64.b64encode(b"123_xyz").decode(),         # non-numeric id
    base64.b64encode(b"-5_10").decode(),           # negative timestamp
    base64.b64encode(b"\xff\xfe_1").decode(),      # not UTF-8
    base64.b64encode(b"99999999999999999999_1").decode(),  # out of range
])
def test_malformed_cursor_means_first_page(raw):
    assert decode_cursor(raw) is None

async def test_cursor_pages_are_complete_with_identical_timestamps(services, test_db, make_user, make_post):
    from nowcast.services.feed_service import FeedService

    author = await make_user("alice")
    same_instant = datetime(2024, 5, 1, 12, 0, 0)
    created = [await make_post(author, f"post {i}", created_at=same_instant) for i in range(5)]

    feed = FeedService(test_db, services.cache, services.settings)
    seen = []
    cursor = None
    while True:
        page = await feed.get_explore_feed(limit=2, cursor=cursor)
        seen.extend(item.id for item in page.items)
        if not page.has_more:
            break
        cursor = page.next_cursor

    assert seen == sorted((post.id for post in created), reverse=True)

def test_extract_hashtags_and_mentions():
    assert extract_hashtags("Hello #World and #world #Py_3") == ["world", "py_3"]
    assert extract_mentions("cc @Bob @bob @carol_1") == ["bob", "carol_1"]
    assert extract_hashtags("nothing here") == []
