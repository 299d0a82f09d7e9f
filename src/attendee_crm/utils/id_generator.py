import uuid


def new_record_id() -> str:
    return str(uuid.uuid4())


def new_clause_id() -> str:
    return f"FLT-{uuid.uuid4().hex[:8]}"
