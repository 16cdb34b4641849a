# -*- coding: utf-8 -*-
"""
Completion client: one chat-completion call, one reply.

- Single best-effort request through the official `openai` SDK.
- Bounded timeout, no retries, no streaming.
- Failures surface as ConfigurationError / UpstreamError.
"""

from __future__ import annotations

from typing import Any, Callable, Dict, List, Optional

import openai
from openai import OpenAI

from orch_config import Settings, load_settings
from orch_errors import UpstreamError


def _provider_message(e: "openai.APIStatusError") -> str:
    body = getattr(e, "body", None)
    if isinstance(body, dict):
        err = body.get("error") if isinstance(body.get("error"), dict) else body
        msg = err.get("message") if isinstance(err, dict) else None
        if isinstance(msg, str) and msg.strip():
            return msg.strip()
    return (getattr(e, "message", "") or str(e)).strip()


class CompletionClient:
    """
    Given ordered role/content turns, return the assistant's reply text.

    settings_loader is called per request so a key added to the environment
    after startup is picked up without a restart. sdk_client is injectable.
    """

    def __init__(
        self,
        settings_loader: Callable[[], Settings] = load_settings,
        *,
        sdk_client: Any = None,
    ) -> None:
        self._settings_loader = settings_loader
        self._injected = sdk_client is not None
        self._sdk_client = sdk_client
        self._client_key: Optional[tuple] = None

    def _client(self, s: Settings) -> Any:
        if self._injected:
            return self._sdk_client
        # Rebuilt only when key/base_url/timeout change
        key = (s.openai_api_key, s.openai_base_url, s.completion_timeout_s)
        if self._sdk_client is None or self._client_key != key:
            kwargs: Dict[str, Any] = {
                "api_key": s.openai_api_key,
                "timeout": s.completion_timeout_s,
                "max_retries": 0,
            }
            # Only pass base_url if explicitly set (keeps SDK default otherwise)
            if s.openai_base_url:
                kwargs["base_url"] = s.openai_base_url
            self._sdk_client = OpenAI(**kwargs)
            self._client_key = key
        return self._sdk_client

    def complete(self, messages: List[Dict[str, str]]) -> str:
        s = self._settings_loader()
        s.require_openai()
        client = self._client(s)

        try:
            resp = client.chat.completions.create(
                model=s.openai_model,
                messages=messages,
            )
        except openai.APITimeoutError as e:
            raise UpstreamError(
                f"模型服务超时（{s.completion_timeout_s:g} 秒）。", detail=str(e)
            ) from e
        except openai.APIStatusError as e:
            raise UpstreamError(
                f"模型服务返回错误 {e.status_code}。", detail=_provider_message(e)
            ) from e
        except openai.APIConnectionError as e:
            raise UpstreamError("无法连接模型服务。", detail=str(e)) from e
        except openai.APIError as e:
            raise UpstreamError("模型服务调用失败。", detail=str(e)) from e
        except ValueError as e:
            # 2xx with a body that is not JSON
            raise UpstreamError("模型服务返回格式异常（响应不是合法 JSON）。", detail=str(e)) from e

        try:
            content = resp.choices[0].message.content
        except (AttributeError, IndexError, TypeError) as e:
            raise UpstreamError("模型服务返回格式异常（缺少回复内容）。") from e
        if not isinstance(content, str):
            raise UpstreamError("模型服务返回格式异常（缺少回复内容）。")
        return content.strip()
