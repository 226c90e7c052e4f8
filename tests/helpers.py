from unittest.mock import AsyncMock, MagicMock


def cursor(docs):
    """A stand-in for a Motor cursor supporting sort/skip/limit chains"""
    mock = MagicMock()
    mock.sort.return_value = mock
    mock.skip.return_value = mock
    mock.limit.return_value = mock
    mock.to_list = AsyncMock(return_value=list(docs))
    return mock


def insert_result(inserted_id):
    result = MagicMock()
    result.inserted_id = inserted_id
    return result


def update_result(modified_count):
    result = MagicMock()
    result.modified_count = modified_count
    return result
