"""Basic tests for newsdesk_db package."""


def test_import_newsdesk_db():
    """Test that newsdesk_db can be imported."""
    import newsdesk_db

    assert hasattr(newsdesk_db, "__version__")
    assert newsdesk_db.__version__ == "1.0.0"


def test_version_format():
    """Test that version follows semver format."""
    import newsdesk_db

    parts = newsdesk_db.__version__.split(".")
    assert len(parts) == 3
    assert all(p.isdigit() for p in parts)


def test_top_level_reexports():
    import newsdesk_db
    from newsdesk_db.backup import BackupService

    assert newsdesk_db.BackupService is BackupService
    for name in newsdesk_db.__all__:
        assert hasattr(newsdesk_db, name)
