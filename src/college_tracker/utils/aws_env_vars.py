import os


def _get_resource_by_env_var(env_var: str) -> str:
    table_name = os.environ.get(env_var)
    if not table_name:
        raise ValueError(f"Missing environment variable: {env_var}")
    return table_name


def get_users_table_name() -> str:
    return _get_resource_by_env_var("USERS_TABLE_NAME")


def get_collaborator_links_table_name() -> str:
    return _get_resource_by_env_var("COLLABORATOR_LINKS_TABLE_NAME")


def get_tasks_table_name() -> str:
    return _get_resource_by_env_var("TASKS_TABLE_NAME")


def get_essays_table_name() -> str:
    return _get_resource_by_env_var("ESSAYS_TABLE_NAME")


def get_colleges_table_name() -> str:
    return _get_resource_by_env_var("COLLEGES_TABLE_NAME")


def get_secrets_table_name() -> str:
    return _get_resource_by_env_var("SECRETS_TABLE_NAME")


def get_google_client_id() -> str:
    return _get_resource_by_env_var("GOOGLE_CLIENT_ID")
