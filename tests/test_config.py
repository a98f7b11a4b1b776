from app.config import Settings


def test_defaults(monkeypatch):
    for name in ("DATABASE_URL", "DB_HOST", "OLLAMA_TIMEOUT", "OLLAMA_MODEL", "CORS_ORIGINS"):
        monkeypatch.delenv(name, raising=False)

    settings = Settings()

    assert settings.database_url is None
    assert settings.db_host == "127.0.0.1"
    assert settings.ollama_timeout == 60
    assert settings.ollama_max_retries == 3
    assert settings.ollama_backoff_initial == 2
    assert settings.ollama_backoff_max == 10
    assert settings.allowed_origins == ["*"]


def test_environment_is_read_and_coerced(monkeypatch):
    monkeypatch.setenv("OLLAMA_TIMEOUT", "15")
    monkeypatch.setenv("DB_PORT", "6543")
    monkeypatch.setenv("OLLAMA_MODEL", "llama3")
    monkeypatch.setenv("CORS_ORIGINS", "http://a.test, http://b.test")

    settings = Settings()

    assert settings.ollama_timeout == 15.0
    assert settings.db_port == 6543
    assert settings.ollama_model == "llama3"
    assert settings.allowed_origins == ["http://a.test", "http://b.test"]


def test_conninfo(monkeypatch):
    monkeypatch.delenv("DATABASE_URL", raising=False)
    settings = Settings(db_host="db", db_port=5433, db_name="shop", db_user="reader", db_pass="secret")
    conninfo = settings.conninfo
    for part in ("host=db", "port=5433", "dbname=shop", "user=reader", "password=secret"):
        assert part in conninfo

    url = "postgresql://reader@db/shop"
    assert Settings(database_url=url).conninfo == url
