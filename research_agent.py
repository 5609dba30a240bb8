"""
Research agent: a local Ollama model plus a web search tool.

Usage:
    research-agent "What is WebAssembly?"
    research-agent --quick "Rust web frameworks 2024"
    research-agent --model qwen2.5 --verbose "Machine learning in Rust"

Prerequisites:
    1. Install Ollama: https://ollama.com
    2. Pull a model that supports tool calling: ollama pull llama3.2
    3. Start the server: ollama serve
"""

import argparse
import asyncio
import logging
import sys
from dataclasses import dataclass, field

import httpx
import requests
from openai import APIConnectionError, APIError, AsyncOpenAI
from pydantic_ai import Agent, RunContext, UsageLimits
from pydantic_ai.exceptions import AgentRunError, ModelHTTPError
from pydantic_ai.models import Model
from pydantic_ai.models.openai import OpenAIChatModel
from pydantic_ai.providers.ollama import OllamaProvider
from pydantic_ai.settings import ModelSettings

from log_setup import setup_logging
from search_tools import SearchError, SearchResult, format_results, search_web
from settings import Config, ConfigError, load_config

logger = logging.getLogger(__name__)

# Model requests per query: up to MAX_TOOL_ROUNDS tool rounds plus the final answer.
MAX_TOOL_ROUNDS = 5

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_CONFIG_ERROR = 2
EXIT_INTERRUPTED = 130


class AgentError(RuntimeError):
    """The inference backend or agent loop failed for this query."""


@dataclass(frozen=True)
class Answer:
    text: str
    sources: tuple[str, ...] = ()


@dataclass
class ResearchDeps:
    """Per-query state handed to tools. Built fresh for every research() call."""

    config: Config
    session: requests.Session | None = None
    results: list[SearchResult] = field(default_factory=list)


SYSTEM_PROMPT = """\
You are a helpful AI research assistant. Your job is to research topics and
provide summaries.

## Tools

- web_search(query): Search the web and get a numbered list of results
  (title, snippet, URL)

## Instructions

1. Use web_search once to find relevant information
2. After you get results, synthesize them into a summary right away
3. Do not keep searching; one search is usually enough
4. If the first search finds nothing, try one simpler query, then summarize

## Response Format

- **Overview**: Short introduction to the topic
- **Key Sources**: The URLs from the search results
- **Summary**: What these sources cover, based on their titles and snippets
- **Next Steps**: What the user might explore next

Always answer once you have search results. Never search indefinitely.
"""

RESEARCH_PROMPT = """\
Research the following topic thoroughly. Use the web_search tool to find
current information, then provide a comprehensive summary with sources:

{query}"""


def web_search(ctx: RunContext[ResearchDeps], query: str) -> str:
    """
    Search the web with DuckDuckGo. Use this to find current information on any topic.

    Args:
        query: The search query
    """
    deps = ctx.deps
    logger.info("Tool call: web_search(query=%r)", query)
    try:
        results = list(
            search_web(
                query,
                deps.config.max_search_results,
                session=deps.session,
                timeout=deps.config.search_timeout,
            )
        )
    except SearchError as e:
        logger.warning("web_search failed: %s", e)
        return f"Search failed ({e}). No results found for: {query}"

    deps.results.extend(results)
    if not results:
        return f"No results found for: {query}"
    return f"## Search results: {query}\n\n{format_results(query, results)}"


TOOLS = [web_search]


def build_model(config: Config) -> OpenAIChatModel:
    """OpenAI-compatible chat model served by Ollama. The client never retries."""
    client = AsyncOpenAI(
        base_url=config.openai_base_url,
        api_key="ollama",
        max_retries=0,
    )
    return OpenAIChatModel(config.model, provider=OllamaProvider(openai_client=client))


def create_agent(config: Config, model: Model | None = None) -> Agent[ResearchDeps, str]:
    """Create the research agent with the web_search tool registered."""
    return Agent(
        model or build_model(config),
        deps_type=ResearchDeps,
        system_prompt=SYSTEM_PROMPT,
        model_settings=ModelSettings(temperature=config.temperature),
        tools=TOOLS,
    )


class ResearchAgent:
    """Runs one research query against the agent, or a plain search."""

    def __init__(
        self,
        config: Config,
        session: requests.Session | None = None,
        model: Model | None = None,
    ):
        self.config = config
        self.session = session
        self.model = model

    async def research(self, query: str) -> Answer:
        """
        Research a topic and return the synthesized answer.

        The tool loop is run by the agent framework. Failures are not retried.
        A model built here is closed before returning; an injected one is not.

        Raises:
            AgentError: If the inference backend or agent loop fails
        """
        logger.info("Starting research: %r (model=%s)", query, self.config.model)
        deps = ResearchDeps(config=self.config, session=self.session)
        model = self.model or build_model(self.config)
        agent = create_agent(self.config, model)

        try:
            result = await agent.run(
                RESEARCH_PROMPT.format(query=query),
                deps=deps,
                usage_limits=UsageLimits(request_limit=MAX_TOOL_ROUNDS + 1),
            )
        except (AgentRunError, APIError, httpx.HTTPError, OSError) as e:
            raise AgentError(f"Agent execution failed: {e}") from e
        finally:
            if self.model is None and isinstance(model, OpenAIChatModel):
                await model.client.close()

        sources = tuple(dict.fromkeys(r.url for r in deps.results))
        logger.info("Research completed with %d sources", len(sources))
        return Answer(text=result.output, sources=sources)

    def quick_search(self, query: str) -> str:
        """
        Search without model synthesis.

        Raises:
            SearchError: If the search request fails
        """
        logger.info("Quick search: %r", query)
        results = list(
            search_web(
                query,
                self.config.max_search_results,
                session=self.session,
                timeout=self.config.search_timeout,
            )
        )
        if not results:
            return f"No results found for: {query}"
        return f"## Search Results\n\n{format_results(query, results)}"


def format_answer(answer: Answer) -> str:
    lines = [answer.text.strip()]
    if answer.sources:
        lines.append("")
        lines.append("Sources:")
        lines.extend(f"- {url}" for url in answer.sources)
    return "\n".join(lines)


def _causes(error: BaseException):
    """Yield the exceptions chained below error, nearest first."""
    seen = {id(error)}
    cause = error.__cause__ or error.__context__
    while cause is not None and id(cause) not in seen:
        seen.add(id(cause))
        yield cause
        cause = cause.__cause__ or cause.__context__


def _hint(error: AgentError, config: Config) -> str | None:
    # pydantic-ai wraps client errors in its own exceptions, so look down the chain.
    for cause in _causes(error):
        if isinstance(cause, (APIConnectionError, httpx.ConnectError, ConnectionError)):
            return f"Make sure Ollama is running at {config.host}:\n   ollama serve"
        if isinstance(cause, ModelHTTPError) and cause.status_code == 404:
            return f"Make sure the model is installed:\n   ollama pull {config.model}"
    return None


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="research-agent",
        description="An AI research assistant that searches the web and summarizes findings.",
        epilog="Settings can also come from OLLAMA_MODEL, OLLAMA_HOST, TEMPERATURE, "
        "MAX_SEARCH_RESULTS, LOG_LEVEL and SEARCH_TIMEOUT (or a .env file).",
    )
    parser.add_argument("query", metavar="QUERY", help="Topic or question to research")
    parser.add_argument(
        "-q", "--quick", action="store_true",
        help="Quick search mode: print raw search results, no AI synthesis",
    )
    parser.add_argument(
        "-m", "--model", default=None,
        help="Ollama model to use (overrides OLLAMA_MODEL)",
    )
    parser.add_argument(
        "-v", "--verbose", action="store_true", help="Enable debug logging",
    )
    return parser.parse_args(argv)


async def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)

    try:
        config = load_config({"model": args.model})
    except ConfigError as e:
        print(f"ConfigError: {e}", file=sys.stderr)
        return EXIT_CONFIG_ERROR

    setup_logging("DEBUG" if args.verbose else config.log_level)
    logger.info("Configuration loaded (model=%s, host=%s)", config.model, config.host)

    with requests.Session() as session:
        agent = ResearchAgent(config, session=session)
        try:
            if args.quick:
                output = agent.quick_search(args.query)
            else:
                output = format_answer(await agent.research(args.query))
        except SearchError as e:
            logger.debug("Search failed", exc_info=True)
            print(f"{type(e).__name__}: {e}", file=sys.stderr)
            return EXIT_FAILURE
        except AgentError as e:
            logger.debug("Research failed", exc_info=True)
            print(f"AgentError: {e}", file=sys.stderr)
            hint = _hint(e, config)
            if hint:
                print(f"Hint: {hint}", file=sys.stderr)
            return EXIT_FAILURE

    print(output)
    return EXIT_OK


def run() -> None:
    """Console script entry point."""
    try:
        code = asyncio.run(main())
    except KeyboardInterrupt:
        code = EXIT_INTERRUPTED
    sys.exit(code)


if __name__ == "__main__":
    run()
