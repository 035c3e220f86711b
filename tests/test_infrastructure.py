"""
Tests for the ambient layers: configuration, error handling, logging,
blob storage and the repository base.
"""

import logging
import os
import tempfile
from unittest.mock import patch

import pytest
from sqlalchemy.exc import SQLAlchemyError

from feedback_engine.infrastructure.config import (
    DatabaseConfig,
    StorageConfig,
    get_settings,
    override_settings,
    reset_settings,
)
from feedback_engine.infrastructure.db import create_database_engine, is_database_configured
from feedback_engine.infrastructure.exceptions import (
    ConfigurationError,
    DatabaseError,
    GrantExpiredError,
    MissingAnswersError,
    SubjectNotFoundError,
    StorageError,
    ValidationError,
    create_user_friendly_error_message,
    handle_database_error,
    log_error_details,
)
from feedback_engine.infrastructure.logging import (
    LogContext,
    clear_context,
    configure_test_logging,
    context_filter,
    get_logger,
    mask_code,
    set_context,
    setup_logging,
)
from feedback_engine.infrastructure.repositories import GrantRepo, SubjectRepo
from feedback_engine.infrastructure.storage import LocalBlobStore
from feedback_engine.utils.seed import DEMO_SUBJECTS, seed_demo_data


class TestConfiguration:
    """Centralized configuration management."""

    def test_database_config_sqlite(self, tmp_path):
        config = DatabaseConfig(backend="sqlite", sqlite_path=str(tmp_path / "feedback"))

        url = config.get_connection_url()
        assert url.startswith("sqlite:///")
        assert url.endswith("feedback.db")
        assert config.get_engine_options()["connect_args"]["timeout"] == 30.0

    def test_database_config_mysql(self):
        config = DatabaseConfig(
            backend="mysql",
            mysql_host="localhost",
            mysql_user="ojt",
            mysql_password="pass",
            mysql_database="ojt_feedback",
        )

        url = config.get_connection_url()
        assert url.startswith("mysql+pymysql://")
        assert "ojt:pass@localhost" in url
        assert "ojt_feedback" in url
        assert "connect_args" not in config.get_engine_options()

    def test_database_configuration_validation(self):
        with pytest.raises(ValueError):
            DatabaseConfig(backend="invalid")

        with pytest.raises(ValueError):
            DatabaseConfig(backend="mysql", mysql_host="localhost", mysql_user="")

    def test_unsupported_backend_is_a_configuration_error(self, tmp_path):
        config = DatabaseConfig(backend="sqlite", sqlite_path=str(tmp_path / "feedback.db"))
        broken = config.model_copy(update={"backend": "oracle"})

        with pytest.raises(ConfigurationError) as exc:
            broken.get_connection_url()
        assert exc.value.details == {"config_key": "backend"}
        with pytest.raises(ConfigurationError):
            create_database_engine(broken)
        assert "configuration" in exc.value.user_message.lower()

    def test_settings_override(self):
        try:
            settings = override_settings(security_access_code_bytes=8)
            assert settings.security.access_code_bytes == 8
            assert get_settings() is settings
        finally:
            os.environ.pop("SECURITY_ACCESS_CODE_BYTES", None)
            reset_settings()
        assert get_settings().security.access_code_bytes == 6

    def test_defaults(self):
        settings = get_settings()
        assert settings.app.environment == "testing"
        assert settings.is_testing()
        assert settings.security.editor_roles == ["admin", "coordinator"]
        assert "image/png" in settings.storage.allowed_content_types
        assert is_database_configured() is True

        env_info = settings.get_environment_info()
        assert env_info["environment"] == "testing"
        assert env_info["database_backend"] == "sqlite"


class TestErrorHandling:
    """Exception types and user-facing messages."""

    def test_validation_error_creation(self):
        error = ValidationError("recipient", "must be an email address", "nope")

        assert error.field == "recipient"
        assert "must be an email address" in str(error)
        assert error.user_message == "Invalid recipient: must be an email address"
        assert error.details == {"field": "recipient", "value": "nope"}

    def test_database_error_handling(self):
        from sqlalchemy.exc import IntegrityError as SQLIntegrityError

        original_error = SQLIntegrityError("statement", {}, Exception("UNIQUE constraint failed"))
        db_error = handle_database_error(original_error, "response.insert")

        assert type(db_error).__name__ == "IntegrityError"
        assert "unique" in db_error.user_message.lower()

        generic = handle_database_error(Exception("disk I/O error"), "grant.create")
        assert isinstance(generic, DatabaseError)
        assert generic.operation == "grant.create"

    def test_user_friendly_error_messages(self):
        assert "expired" in create_user_friendly_error_message(GrantExpiredError("ABC123")).lower()
        assert "try again" in create_user_friendly_error_message(ValueError("boom")).lower()

    def test_answer_errors_carry_question_ids(self):
        details = log_error_details(MissingAnswersError([3, 7]), {"grant_code": "ABC1…"})
        assert details["error_type"] == "MissingAnswersError"
        assert details["error_details"] == {"question_ids": [3, 7]}
        assert details["context"] == {"grant_code": "ABC1…"}


class TestLogging:
    """Logging helpers."""

    def test_logger_is_namespaced(self):
        assert get_logger("test_module").name == "feedback_engine.test_module"
        assert get_logger("feedback_engine.web").name == "feedback_engine.web"

    def test_mask_code(self):
        assert mask_code("ab12cd34ef56") == "ab12…"
        assert mask_code("abc") == "…"
        assert mask_code(None) == "<none>"

    def test_logging_configuration_writes_file(self):
        with tempfile.TemporaryDirectory() as temp_dir:
            log_file = os.path.join(temp_dir, "test.log")
            try:
                setup_logging(level="DEBUG", log_file=log_file, structured=True, enable_console=False)
                get_logger("test").info("Grant issued")
                for handler in logging.getLogger("feedback_engine").handlers:
                    handler.flush()
                assert os.path.exists(log_file)
                with open(log_file, encoding="utf-8") as fh:
                    assert "Grant issued" in fh.read()
            finally:
                for handler in logging.getLogger("feedback_engine").handlers:
                    handler.close()
                configure_test_logging()

    def test_context_is_scoped(self):
        clear_context()
        set_context(subject_id=42)
        with LogContext(operation="issue_grant", template_id=3):
            assert context_filter.context == {"subject_id": 42, "operation": "issue_grant", "template_id": 3}
        assert context_filter.context == {"subject_id": 42}
        clear_context()
        assert context_filter.context == {}


class TestBlobStorage:
    """Content-addressed signature storage."""

    def test_same_bytes_same_ref(self, blob_store):
        a = blob_store.store(b"\x89PNG signature", content_type="image/png")
        b = blob_store.store(b"\x89PNG signature", content_type="image/png")
        assert a == b
        assert a.startswith("blob://")
        assert blob_store.path_for(a).read_bytes() == b"\x89PNG signature"
        assert blob_store.resolve(a) == f"http://testserver/blobs/{a[len('blob://'):]}"

    def test_rejections(self, tmp_path):
        store = LocalBlobStore(StorageConfig(blob_dir=str(tmp_path), max_signature_bytes=1024))
        with pytest.raises(StorageError):
            store.store(b"")
        with pytest.raises(StorageError):
            store.store(b"x" * 1025)
        with pytest.raises(StorageError):
            store.store(b"%PDF", content_type="application/pdf")
        with pytest.raises(StorageError):
            store.resolve("sig://1")
        with pytest.raises(StorageError):
            store.resolve("blob://not-a-digest")


class TestRepositoryPatterns:
    """Repository helpers on top of the generic base."""

    def test_subject_repository(self, session):
        repo = SubjectRepo(session)
        subject = repo.create(student_name="Ana Lim", company_name="Harbor Foods")

        assert subject.id is not None
        assert repo.get_by_id_required(subject.id).student_name == "Ana Lim"
        with pytest.raises(SubjectNotFoundError):
            repo.get_by_id_required(999)

    def test_repository_error_handling(self, session):
        repo = GrantRepo(session)

        with (
            patch.object(session, "add", side_effect=SQLAlchemyError("DB Error")),
            pytest.raises(DatabaseError),
        ):
            repo.create(code="X", subject_id=1, template_id=1, bound_version=1, respondent_role="supervisor")


def test_seed_demo_data(session):
    summary = seed_demo_data(session)

    templates = summary["templates"]
    assert set(templates) == {"appraisal", "supervisor-feedback", "student-feedback"}
    # create + (add_category, set_questions) per appraisal category
    assert templates["appraisal"][1] == 7
    assert templates["supervisor-feedback"][1] == 2
    assert len(summary["subject_ids"]) == len(DEMO_SUBJECTS)
    assert [s.student_name for s in SubjectRepo(session).list_all()] == ["Maria Santos", "Paolo Cruz"]
