from pathlib import Path

from faqrag.core.storage import LocalStorage, get_storage


async def test_local_upload_and_delete(tmp_path):
    storage = LocalStorage(base_path=str(tmp_path))

    location = await storage.upload(b"hello", "faq.txt", folder="documents")

    path = Path(location)
    assert path.parent == tmp_path / "documents"
    assert path.suffix == ".txt"
    assert path.read_bytes() == b"hello"

    await storage.delete(location)
    assert not path.exists()


async def test_local_delete_ignores_paths_outside_base(tmp_path):
    outside = tmp_path / "outside.txt"
    outside.write_bytes(b"keep me")
    storage = LocalStorage(base_path=str(tmp_path / "storage"))

    await storage.delete(str(outside))

    assert outside.exists()


def test_local_backend_when_s3_disabled():
    assert isinstance(get_storage(), LocalStorage)
