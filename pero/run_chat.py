"""Turn one conversation document into the next one."""

from pathlib import Path
from typing import Literal

from pydantic import BaseModel, Field

from pero.agent import Agent
from pero.config import Config, get_config
from pero.llm import LLMProvider, create_provider, get_gateway
from pero.logging import get_logger
from pero.restructure import (
    include_preamble,
    parse,
    rebuild_leading_trailing,
    recombine_with_original,
    start_end_split,
)
from pero.tools.registry import ToolRegistry, resolve_auto_tools_path

log = get_logger(__name__)


class ChatRunOptions(BaseModel):
    """Everything one run needs besides the document itself."""

    model: str
    gateway: str
    tools: list[str] = Field(default_factory=list)
    preamble: list[str] = Field(default_factory=list)
    omit_tools: bool = False
    default_tools_path: str = ""
    output_only: bool = False
    include_reasoning: bool = False
    include_tool: Literal["none", "call", "result"] = "none"
    tools_placement: Literal["top", "bottom"] = "top"
    reasoning_effort: Literal["low", "medium", "high"] | None = None
    api_key: str = ""
    base_url: str = ""
    timeout: float = 600.0
    temperature: float | None = None
    max_tokens: int | None = None
    max_tool_depth: int = 20
    max_per_result_chars: int = 22000
    max_total_chars: int = 60000
    default_timeout_ms: int | None = None
    mcp_init_timeout: float = 30.0

    @classmethod
    def from_config(cls, config: Config | None = None, **overrides) -> "ChatRunOptions":
        """Options from configuration defaults; ``None`` overrides are ignored."""
        cfg = config or get_config()
        values = {
            "model": cfg.model.model,
            "gateway": cfg.model.gateway,
            "tools": list(cfg.tools.paths),
            "omit_tools": not cfg.tools.default_tools,
            "default_tools_path": cfg.tools.default_path,
            "output_only": cfg.chat.output_only,
            "include_reasoning": cfg.chat.include_reasoning,
            "include_tool": cfg.chat.include_tool,
            "tools_placement": cfg.chat.tools_placement,
            "reasoning_effort": cfg.model.reasoning_effort,
            "api_key": cfg.model.api_key,
            "base_url": cfg.model.base_url,
            "timeout": cfg.model.timeout,
            "temperature": cfg.model.temperature,
            "max_tokens": cfg.model.max_tokens,
            "max_tool_depth": cfg.chat.max_tool_depth,
            "max_per_result_chars": cfg.chat.max_per_result_chars,
            "max_total_chars": cfg.chat.max_total_chars,
            "default_timeout_ms": cfg.tools.default_timeout_ms,
            "mcp_init_timeout": cfg.tools.mcp_init_timeout,
        }
        values.update({key: value for key, value in overrides.items() if value is not None})
        return cls(**values)


def resolve_tool_paths(options: ChatRunOptions, cwd: Path | str | None = None) -> list[str]:
    """Auto-discovered tools file (unless omitted) followed by explicit ones."""
    paths: list[str] = []
    if not options.omit_tools:
        auto = resolve_auto_tools_path(cwd or Path.cwd(), options.default_tools_path)
        if auto is not None:
            paths.append(str(auto))
    paths.extend(options.tools)
    return paths


async def run_chat(
    text: str,
    options: ChatRunOptions,
    provider: LLMProvider | None = None,
    cwd: Path | str | None = None,
) -> str:
    """Process a document and return the document with the model's answer.

    Fatal errors propagate; no partial document is produced.
    """
    split = start_end_split(text)
    tool_paths = resolve_tool_paths(options, cwd)
    gateway = get_gateway(options.gateway)

    own_provider = provider is None
    if provider is None:
        provider = create_provider(
            gateway=options.gateway,
            model=options.model,
            api_key=options.api_key or None,
            base_url=options.base_url or None,
            temperature=options.temperature,
            max_tokens=options.max_tokens,
            reasoning_effort=options.reasoning_effort,
            include_reasoning=options.include_reasoning,
            timeout=options.timeout,
        )

    log.info("Running chat", gateway=options.gateway, model=options.model, tools=tool_paths)
    try:
        registry = await ToolRegistry.load(
            tool_paths,
            default_timeout_ms=options.default_timeout_ms,
            init_timeout=options.mcp_init_timeout,
        )
        async with registry:
            main = include_preamble(split.main, options.preamble)
            session = parse(main, audio_format=gateway.audio_format, base_dir=cwd)
            agent = Agent(provider, tools=registry, max_depth=options.max_tool_depth)
            final = await agent.run(session)
    finally:
        if own_provider:
            await provider.close()

    content = recombine_with_original(
        final,
        original=split.main,
        output_only=options.output_only,
        include_reasoning=options.include_reasoning,
        include_tool=options.include_tool,
        tools_placement=options.tools_placement,
        max_per_result_chars=options.max_per_result_chars,
        max_total_chars=options.max_total_chars,
    )
    return rebuild_leading_trailing(split.leading, content, split.trailing)
