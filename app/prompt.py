# app/prompt.py
from .models import GenerationRequest, TaskKind

GENERATE_INSTR = (
    "You are an expert PostgreSQL query generator. Based on the following database schema "
    "and a natural language request, generate a single, executable SQL query.\n\n"
    "### Rules:\n"
    "1. ONLY output the raw SQL query. Do not include any other text, explanations, "
    "or markdown formatting like ```sql.\n"
    "2. The query must be a read-only SELECT (or WITH ... SELECT) compatible with PostgreSQL and PostGIS.\n"
    "3. Use the provided schema context to ensure correct table and column names.\n"
)

REFINE_INSTR = (
    "You are an expert PostgreSQL query editor. Your task is to modify an existing SQL query "
    "based on a user's request.\n\n"
    "### Rules:\n"
    "1. ONLY output the raw, modified SQL query. Do not include explanations or markdown.\n"
    "2. The modified query must remain a read-only SELECT (or WITH ... SELECT).\n"
)

EXPLAIN_INSTR = (
    "You are an expert at explaining PostgreSQL queries. Your task is to explain the provided "
    "SQL query in simple, clear terms.\n"
    "Do not include the original query in your response. Just provide the explanation.\n"
)


def build_prompt(req: GenerationRequest) -> str:
    """
    Compose a schema-aware prompt for the LLM.
    The schema block is the rendered SchemaContext, passed verbatim.
    """
    schema_text = req.schema_context.render()

    if req.kind is TaskKind.GENERATE:
        parts = [
            GENERATE_INSTR,
            "### Schema Context:", schema_text,
            "### Natural Language Request:", f'"{req.text}"', "",
            "SQL Query:",
        ]
    elif req.kind is TaskKind.REFINE:
        parts = [
            REFINE_INSTR,
            "### Schema Context:", schema_text,
            "### Original SQL Query:", req.previous_sql, "",
            "### User's Refinement Request:", f'"{req.text}"', "",
            "Modified SQL Query:",
        ]
    else:
        parts = [
            EXPLAIN_INSTR,
            "### Schema Context:", schema_text,
            "### SQL Query to Explain:", req.text, "",
            "### Explanation:",
        ]
    return "\n".join(parts)
