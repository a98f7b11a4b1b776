import json

import httpx
import psycopg
import pytest

from app.errors import (
    DatabaseExecutionError,
    GenerationFailed,
    InvalidInput,
    ModelServiceFailure,
    SchemaUnavailable,
)


def sent_prompt(route):
    return json.loads(route.calls.last.request.content)["messages"][0]["content"]


@pytest.mark.asyncio
async def test_generate_end_to_end(pipeline, ollama, reply, fake_pg):
    route = ollama.post("/api/chat").mock(return_value=reply("```sql\nSELECT * FROM users;\n```"))

    response = await pipeline.generate("show all users")

    assert response.success is True
    assert response.original_query == "show all users"
    assert response.generated_sql == "SELECT * FROM users;"
    assert response.previous_sql is None
    assert response.execution_result.executed_sql == response.generated_sql
    assert response.execution_result.data == [{"id": 1, "name": "Ada"}, {"id": 2, "name": "Linus"}]
    assert fake_pg.user_queries == ["SELECT * FROM users;"]

    prompt = sent_prompt(route)
    assert '"show all users"' in prompt
    assert "Table `users`:\n  - id (integer)\n  - name (text)\n" in prompt
    assert "PostgreSQL" in prompt


@pytest.mark.asyncio
async def test_generate_empty_reply_fails_before_execution(pipeline, ollama, reply, fake_pg):
    ollama.post("/api/chat").mock(return_value=reply(""))

    with pytest.raises(GenerationFailed, match="AI failed to generate a valid SQL query") as exc_info:
        await pipeline.generate("show all users")

    assert isinstance(exc_info.value, ModelServiceFailure)
    assert fake_pg.user_queries == []


@pytest.mark.asyncio
async def test_generate_fence_only_reply_is_empty(pipeline, ollama, reply, fake_pg):
    ollama.post("/api/chat").mock(return_value=reply("```sql\n```"))

    with pytest.raises(GenerationFailed, match="The response was empty"):
        await pipeline.generate("show all users")
    assert fake_pg.user_queries == []


@pytest.mark.asyncio
async def test_generated_mutation_is_rejected_without_execution(pipeline, ollama, reply, fake_pg):
    ollama.post("/api/chat").mock(return_value=reply("DELETE FROM users;"))

    with pytest.raises(InvalidInput, match="potentially dangerous operations"):
        await pipeline.generate("remove everyone")
    assert fake_pg.user_queries == []


@pytest.mark.asyncio
async def test_generate_execution_failure_propagates(pipeline, ollama, reply, fake_pg):
    fake_pg.results["SELECT nope FROM users"] = psycopg.errors.UndefinedColumn('column "nope" does not exist')
    ollama.post("/api/chat").mock(return_value=reply("SELECT nope FROM users"))

    with pytest.raises(DatabaseExecutionError) as exc_info:
        await pipeline.generate("show nope")
    assert exc_info.value.sql == "SELECT nope FROM users"


@pytest.mark.asyncio
async def test_model_unreachable(pipeline, ollama, fake_pg):
    ollama.post("/api/chat").mock(side_effect=httpx.ConnectError("refused"))

    with pytest.raises(ModelServiceFailure, match="Failed to get a response"):
        await pipeline.generate("show all users")
    assert fake_pg.user_queries == []


@pytest.mark.asyncio
async def test_schema_failure_is_reraised_unchanged(pipeline, ollama, fake_pg):
    route = ollama.post("/api/chat")
    fake_pg.fail_with = psycopg.OperationalError("connection refused")

    with pytest.raises(SchemaUnavailable):
        await pipeline.generate("show all users")
    assert route.call_count == 0


@pytest.mark.asyncio
async def test_unexpected_error_is_wrapped(pipeline, monkeypatch):
    async def boom(prompt, task="chat"):
        raise RuntimeError("bad state")

    monkeypatch.setattr(pipeline.llm, "chat", boom)

    with pytest.raises(ModelServiceFailure, match="unexpected error") as exc_info:
        await pipeline.generate("show all users")
    assert isinstance(exc_info.value.__cause__, RuntimeError)


@pytest.mark.asyncio
async def test_refine(pipeline, ollama, reply, fake_pg):
    fake_pg.results["SELECT name FROM users ORDER BY name"] = (["name"], [("Ada",), ("Linus",)])
    route = ollama.post("/api/chat").mock(return_value=reply("SELECT name FROM users ORDER BY name"))

    response = await pipeline.refine("SELECT * FROM users;", "only names, sorted")

    assert response.success is True
    assert response.original_query == "only names, sorted"
    assert response.previous_sql == "SELECT * FROM users;"
    assert response.generated_sql == "SELECT name FROM users ORDER BY name"
    assert response.execution_result.columns == ["name"]

    prompt = sent_prompt(route)
    assert "### Original SQL Query:\nSELECT * FROM users;" in prompt
    assert '"only names, sorted"' in prompt


@pytest.mark.asyncio
async def test_refine_empty_reply(pipeline, ollama, reply):
    ollama.post("/api/chat").mock(return_value=reply("   "))

    with pytest.raises(GenerationFailed, match="refined SQL query"):
        await pipeline.refine("SELECT 1", "add a column")


@pytest.mark.asyncio
async def test_explain_never_executes(pipeline, ollama, reply, fake_pg):
    route = ollama.post("/api/chat").mock(return_value=reply("It deletes every user."))

    explanation = await pipeline.explain("DELETE FROM users")

    assert explanation == "It deletes every user."
    assert fake_pg.user_queries == []
    assert "### SQL Query to Explain:\nDELETE FROM users" in sent_prompt(route)


@pytest.mark.asyncio
async def test_explain_empty_reply(pipeline, ollama, reply):
    ollama.post("/api/chat").mock(return_value=reply(""))

    with pytest.raises(GenerationFailed, match="explanation"):
        await pipeline.explain("SELECT 1")


@pytest.mark.asyncio
async def test_execute_runs_validator_first(pipeline, fake_pg):
    with pytest.raises(InvalidInput):
        await pipeline.execute("UPDATE users SET name = 'x'")
    assert fake_pg.executed == []

    result = await pipeline.execute("SELECT * FROM users;")
    assert result.row_count == 2


@pytest.mark.asyncio
async def test_health(pipeline, ollama, fake_pg):
    route = ollama.get("/").mock(return_value=httpx.Response(200))
    assert await pipeline.health() == {
        "status": "HEALTHY",
        "database_connection": True,
        "ai_service_connection": True,
    }
    assert await pipeline.is_healthy() is True

    route.mock(side_effect=httpx.ConnectError("refused"))
    assert await pipeline.is_healthy() is False

    route.mock(side_effect=None, return_value=httpx.Response(200))
    fake_pg.fail_with = psycopg.OperationalError("down")
    assert (await pipeline.health())["database_connection"] is False
    assert await pipeline.is_healthy() is False
