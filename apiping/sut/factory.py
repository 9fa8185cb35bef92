import logging
from dataclasses import dataclass
from typing import Callable, List, Optional

from apiping.bench.types import ApiContext
from apiping.sut.config import ConfigError, RunConfig
from apiping.sut.openapi_model import ApiModel, load_document

logger = logging.getLogger(__name__)

MAX_SELECTION_ATTEMPTS = 3


@dataclass
class ServerSelection:
    url: Optional[str]
    ok: bool
    reason: str = ""


def select_server(servers: List[str], ask: Callable[[str], str], attempts: int = MAX_SELECTION_ATTEMPTS) -> ServerSelection:
    """
    Let the user pick one of the documented servers by index.
    Invalid answers are retried up to `attempts` times.
    """
    if not servers:
        return ServerSelection(url=None, ok=False, reason="no servers documented")

    prompt = "\n".join(["No base given. Select a server."] + [f"[{i}] {s}" for i, s in enumerate(servers)])
    prompt += "\nPick a server no.: "

    for _ in range(attempts):
        answer = (ask(prompt) or "").strip()
        if answer.isdigit() and int(answer) < len(servers):
            return ServerSelection(url=servers[int(answer)], ok=True)
        logger.warning("Cannot parse %r. Please pick one of the given options as simple number!", answer)

    return ServerSelection(url=None, ok=False, reason=f"no valid selection after {attempts} attempts")


class ApiFactory:
    def __init__(self, ask: Optional[Callable[[str], str]] = None):
        self.ask = ask or input

    def build(self, config: RunConfig) -> ApiContext:
        if not config.input:
            raise ConfigError("No input given. Set APING_INPUT to the path/url of the api description")

        doc = load_document(config.input)
        model = ApiModel.from_document(doc)

        base_url = config.base_url
        if not base_url:
            selection = select_server(model.servers, self.ask)
            if not selection.ok:
                raise ConfigError(f"No base url given and none selected: {selection.reason}")
            base_url = selection.url

        title = model.title or config.input
        return ApiContext(
            base_url=base_url,
            title=f"{title} - {model.description}" if model.description else title,
            model=model,
        )
