"""Backend Gateway 抽象接口。

上层 ChatEngine / TitleScheduler / SummarizationSession 不直接依赖具体的 HTTP 细节，
而是依赖此协议：

- GeminiClient：服务端组件，直接调用 Gemini REST API，持有 API 密钥。
- ProxyClient：客户端组件，按 /api/proxy 的线协议调用代理。

Gateway 只负责网络调用，不做缓存，也不做内部重试；错误以
NetworkError / ApiError / ConfigurationError 抛给调用方。
"""

from typing import Iterator, List, Optional, Protocol

from chat_core.domain.models import HistoryItem, Part, SamplingConfig


class GatewayClient(Protocol):
    """生成式语言 API 的客户端协议。"""

    name: str

    def stream_turn(
        self,
        prior_history: List[HistoryItem],
        message_parts: List[Part],
        model: str,
        sampling: SamplingConfig,
    ) -> Iterator[str]:
        """打开一条流，按到达顺序产出非空文本增量。"""

        ...

    def complete(self, prompt: str, model: str, sampling: SamplingConfig) -> str:
        """一次性请求/响应，用于标题生成。"""

        ...

    def stream_prompt(
        self,
        prompt: str,
        model: str,
        sampling: Optional[SamplingConfig] = None,
    ) -> Iterator[str]:
        """单条提示词的流式生成，用于摘要与追问。"""

        ...

    def validate_configuration(self) -> None:
        """无法工作时（例如缺少密钥）抛出 ConfigurationError。"""

        ...
