from .client import ChatClient, ChatRoute, LLMError, load_route

_CLIENT = ChatClient()


def get_client() -> ChatClient:
    return _CLIENT


__all__ = ["ChatClient", "ChatRoute", "LLMError", "get_client", "load_route"]
