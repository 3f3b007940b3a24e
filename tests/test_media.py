from __future__ import annotations

from pathlib import Path

from photobatch import media


def test_is_jpeg():
    assert media.is_jpeg(Path("a.jpg"))
    assert media.is_jpeg(Path("a.JPEG"))
    assert not media.is_jpeg(Path("a.mp4"))
    assert not media.is_jpeg(Path("a.png"))


def test_is_media():
    for name in ("a.jpg", "b.jpeg", "c.MP4", "d.mov"):
        assert media.is_media(Path(name)), name
    for name in ("a.png", "b.txt", "c.heic", "noext"):
        assert not media.is_media(Path(name)), name


def test_hidden_files_are_not_media():
    assert not media.is_media(Path("._IMG_0001.jpg"))
    assert not media.is_media(Path(".DS_Store"))
    assert media.is_hidden(Path(".cache"))


def test_is_video():
    assert media.is_video(Path("clip.MOV"))
    assert media.is_video(Path("clip.mp4"))
    assert not media.is_video(Path("a.jpg"))
