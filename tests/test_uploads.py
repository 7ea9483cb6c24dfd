"""Unit tests for easypages/uploads.py and the session secret loader."""

import stat

import pytest

from easypages import config
from easypages.uploads import is_inside_uploads, safe_unlink, transient_upload


class TestSafeUnlink:
    """Tests for safe_unlink and is_inside_uploads."""

    def test_removes_file_inside_uploads(self, uploads_dir):
        """Should delete a file under UPLOADS_DIR."""
        path = uploads_dir / "upload_abc"
        path.write_bytes(b"x")
        assert safe_unlink(path) is True
        assert not path.exists()

    def test_refuses_file_outside_uploads(self, uploads_dir, tmp_path):
        """Should leave a file outside UPLOADS_DIR alone."""
        outside = tmp_path / "keep.txt"
        outside.write_text("important")
        assert safe_unlink(outside) is False
        assert outside.read_text() == "important"

    def test_refuses_traversal_out_of_uploads(self, uploads_dir, tmp_path):
        """Should resolve .. before checking containment."""
        outside = tmp_path / "keep.txt"
        outside.write_text("important")
        assert safe_unlink(uploads_dir / ".." / "keep.txt") is False
        assert outside.exists()

    def test_refuses_uploads_dir_itself(self, uploads_dir):
        """Should never target the directory itself."""
        assert is_inside_uploads(uploads_dir) is False
        assert safe_unlink(uploads_dir) is False
        assert uploads_dir.is_dir()

    def test_missing_file_is_fine(self, uploads_dir):
        """Should not fail when the file is already gone."""
        assert safe_unlink(uploads_dir / "gone") is True

    def test_none(self):
        """Should ignore a missing path."""
        assert safe_unlink(None) is False


class TestTransientUpload:
    """Tests for transient_upload."""

    def test_file_exists_only_inside_block(self, uploads_dir):
        """Should write the bytes and remove them on exit."""
        with transient_upload(b"archive") as path:
            assert path.parent == uploads_dir
            assert path.read_bytes() == b"archive"
        assert not path.exists()

    def test_removed_on_error(self, uploads_dir):
        """Should remove the file when the block raises."""
        with pytest.raises(RuntimeError):
            with transient_upload(b"archive"):
                raise RuntimeError("boom")
        assert list(uploads_dir.iterdir()) == []


class TestSessionSecret:
    """Tests for config.load_session_secret."""

    def test_env_secret_wins(self, tmp_path, monkeypatch):
        """Should prefer SESSION_SECRET over the file."""
        monkeypatch.setattr(config, "SESSION_SECRET", "from-env")
        assert config.load_session_secret(tmp_path / "secret") == "from-env"
        assert not (tmp_path / "secret").exists()

    def test_reads_existing_file(self, tmp_path, monkeypatch):
        """Should reuse a stored secret."""
        monkeypatch.setattr(config, "SESSION_SECRET", "")
        path = tmp_path / "secret"
        path.write_text("stored-secret\n")
        assert config.load_session_secret(path) == "stored-secret"

    def test_generates_and_persists(self, tmp_path, monkeypatch):
        """Should generate a secret, save it with owner-only permissions and reuse it."""
        monkeypatch.setattr(config, "SESSION_SECRET", "")
        path = tmp_path / "secret"

        secret = config.load_session_secret(path)

        assert len(secret) == 64
        assert path.read_text() == secret
        assert stat.S_IMODE(path.stat().st_mode) == 0o600
        assert config.load_session_secret(path) == secret
