def get_api_headers(bearer_token: str) -> dict:
    return {
        "Authorization": f"Bearer {bearer_token}",
        "Content-Type": "application/json",
    }


def get_api_endpoint(base_url: str, api_version: str, path: str) -> str:
    """
    Join the Graph API base url, version and path (e.g. "<phone_id>/messages").
    """
    return f"{base_url.rstrip('/')}/{api_version.strip('/')}/{path.lstrip('/')}"
