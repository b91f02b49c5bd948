"""Fake requests responses for relay tests."""

from unittest.mock import Mock

from requests.structures import CaseInsensitiveDict


def fake_response(status=200, headers=None, body=b"", text=None, json_data=None):
    response = Mock()
    response.status_code = status
    response.ok = status < 400
    response.reason = "OK" if status < 400 else "Error"
    response.headers = CaseInsensitiveDict(headers or {})
    response.text = text if text is not None else body.decode("utf-8", "replace")
    response.raw.stream.side_effect = lambda amt=65536, decode_content=None: iter(
        [body[i:i + amt] for i in range(0, len(body), amt)]
    )
    if json_data is None:
        response.json.side_effect = ValueError("No JSON object could be decoded")
    else:
        response.json.return_value = json_data
    return response


def consuming_put(*responses):
    """Side effect for requests.put that drains the streamed body like a socket would."""
    calls = []
    queue = list(responses)

    def put(url, data=None, headers=None, timeout=None):
        body = data if isinstance(data, bytes) else b"".join(data)
        calls.append({
            "url": url,
            "body": body,
            "headers": headers,
            "length": len(data) if hasattr(data, "__len__") else None,
        })
        result = queue.pop(0)
        if isinstance(result, Exception):
            raise result
        return result

    put.calls = calls
    return put
