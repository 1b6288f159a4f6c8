"""Unit tests for diary/store.py -- beers, comments and the two-phase attach.

Covers:
- create_beer() validation and empty initial comment sequence
- get_beer() expands comments in attachment order; absent id -> None
- attach_comment() on a missing beer raises BeerNotFound and leaves the
  phase-one comment standalone (asserted explicitly)
- concurrent attach_comment() calls on one beer all land
"""

import threading
from concurrent.futures import ThreadPoolExecutor

import pytest

from core.database import create_db_engine
from core.errors import BeerNotFound, ValidationError
from diary.store import DiaryStore

IMG = "https://example.com/beer.jpg"


class TestCreateBeer:
    def test_new_beer_has_no_comments(self, diary):
        beer_id = diary.create_beer("IPA", IMG, "Hoppy.")
        beer = diary.get_beer(beer_id)
        assert beer.name == "IPA"
        assert beer.image == IMG
        assert beer.description == "Hoppy."
        assert beer.comment_ids == []
        assert beer.comments == []

    def test_fields_are_stripped(self, diary):
        beer = diary.get_beer(diary.create_beer("  Stout ", IMG, " Dark. "))
        assert beer.name == "Stout"
        assert beer.description == "Dark."

    @pytest.mark.parametrize(
        "name,image,description",
        [
            ("", IMG, "desc"),
            ("   ", IMG, "desc"),
            ("IPA", "", "desc"),
            ("IPA", IMG, ""),
            (None, IMG, "desc"),
            ("x" * 256, IMG, "desc"),
        ],
    )
    def test_invalid_fields_rejected(self, diary, name, image, description):
        with pytest.raises(ValidationError):
            diary.create_beer(name, image, description)
        assert diary.list_beers() == []

    def test_list_beers_oldest_first(self, diary):
        diary.create_beer("First", IMG, "1")
        diary.create_beer("Second", IMG, "2")
        assert [b.name for b in diary.list_beers()] == ["First", "Second"]


class TestGetBeer:
    def test_absent_beer_is_none(self, diary):
        assert diary.get_beer(12345) is None

    def test_comments_expanded_in_attachment_order(self, diary):
        beer_id = diary.create_beer("IPA", IMG, "Hoppy.")
        ids = [diary.attach_comment(beer_id, text, author_id=1) for text in ("one", "two", "three")]

        beer = diary.get_beer(beer_id)
        assert beer.comment_ids == ids
        assert [c.text for c in beer.comments] == ["one", "two", "three"]
        assert all(c.author_id == 1 for c in beer.comments)
        assert diary.comment_ids(beer_id) == ids

    def test_comments_belong_to_one_beer(self, diary):
        a = diary.create_beer("A", IMG, "a")
        b = diary.create_beer("B", IMG, "b")
        diary.attach_comment(a, "on a", author_id=None)
        assert [c.text for c in diary.get_beer(a).comments] == ["on a"]
        assert diary.get_beer(b).comments == []


class TestAttachComment:
    def test_empty_text_rejected_before_anything_is_written(self, diary):
        beer_id = diary.create_beer("IPA", IMG, "Hoppy.")
        with pytest.raises(ValidationError):
            diary.attach_comment(beer_id, "   ", author_id=1)
        assert diary.comment_ids(beer_id) == []
        assert diary.get_comment(1) is None

    def test_missing_beer_raises_and_leaves_orphan(self, diary):
        other = diary.create_beer("Other", IMG, "unrelated")

        with pytest.raises(BeerNotFound) as excinfo:
            diary.attach_comment(999, "lost", author_id=1)
        assert excinfo.value.beer_id == 999

        # The phase-one comment still exists on its own...
        orphan = diary.get_comment(1)
        assert orphan is not None
        assert orphan.text == "lost"
        # ...but no beer references it.
        assert diary.comment_ids(999) == []
        assert diary.comment_ids(other) == []
        assert diary.get_beer(other).comments == []

    def test_push_to_missing_beer(self, diary):
        comment_id = diary.create_comment("standalone", author_id=None)
        with pytest.raises(BeerNotFound):
            diary.push_comment(999, comment_id)
        assert diary.get_comment(comment_id).text == "standalone"


class TestConcurrentAttach:
    """Concurrent writers on one beer each append their own link row.

    A file-backed database is used so every worker thread gets a real,
    separate SQLite connection.
    """

    @pytest.fixture
    def file_diary(self, tmp_path):
        engine = create_db_engine(f"sqlite:///{tmp_path / 'diary.db'}")
        yield DiaryStore(engine)
        engine.dispose()

    def test_two_concurrent_comments_both_land(self, file_diary):
        beer_id = file_diary.create_beer("IPA", IMG, "Hoppy.")
        barrier = threading.Barrier(2)

        def comment(text):
            barrier.wait()
            return file_diary.attach_comment(beer_id, text, author_id=1)

        with ThreadPoolExecutor(max_workers=2) as pool:
            ids = list(pool.map(comment, ["B1", "B2"]))

        sequence = file_diary.comment_ids(beer_id)
        assert len(sequence) == 2
        assert set(sequence) == set(ids)

    def test_many_concurrent_comments_all_land(self, file_diary):
        beer_id = file_diary.create_beer("IPA", IMG, "Hoppy.")
        texts = [f"comment {i}" for i in range(16)]

        with ThreadPoolExecutor(max_workers=8) as pool:
            ids = list(pool.map(lambda t: file_diary.attach_comment(beer_id, t, author_id=None), texts))

        beer = file_diary.get_beer(beer_id)
        assert len(beer.comment_ids) == len(texts)
        assert set(beer.comment_ids) == set(ids)
        assert sorted(c.text for c in beer.comments) == sorted(texts)
