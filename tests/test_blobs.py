import pytest

from uniawards.blobs import MAX_IMAGE_BYTES, ImageStore, allowed_file
from uniawards.errors import ValidationError


@pytest.fixture
def store(tmp_path):
    return ImageStore(str(tmp_path / "uploads"), "http://api.local/")


def test_allowed_file():
    assert allowed_file("photo.PNG")
    assert allowed_file("photo.webp")
    assert not allowed_file("photo.exe")
    assert not allowed_file("photo")


def test_save_under_poll_folder(store):
    url = store.save("poll-1", "My Photo.JPG", b"\xff\xd8image")
    assert url.startswith("http://api.local/uploads/poll-1/")
    assert url.endswith(".jpg")

    name = url.rsplit("/", 1)[1]
    assert (store.root / "poll-1" / name).read_bytes() == b"\xff\xd8image"


def test_two_saves_do_not_collide(store):
    assert store.save("poll-1", "a.png", b"one") != store.save("poll-1", "a.png", b"two")


@pytest.mark.parametrize("filename, data", [
    ("notes.txt", b"text"),
    ("../../etc/passwd", b"root"),
    ("empty.png", b""),
    ("huge.png", b"x" * (MAX_IMAGE_BYTES + 1)),
])
def test_rejected_uploads(store, filename, data):
    with pytest.raises(ValidationError):
        store.save("poll-1", filename, data)


def test_discard_removes_only_own_images(store, tmp_path):
    url = store.save("poll-1", "a.png", b"one")
    assert store.discard(url)
    assert list((store.root / "poll-1").iterdir()) == []
    assert not store.discard(url)

    outside = tmp_path / "keep.png"
    outside.write_bytes(b"keep")
    assert not store.discard("http://api.local/uploads/../keep.png")
    assert not store.discard("http://elsewhere/uploads/poll-1/a.png")
    assert outside.exists()
