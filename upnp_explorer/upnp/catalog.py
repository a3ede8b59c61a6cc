"""
Action Catalog Resolver

Fetches a service's SCPD document and lists the actions it declares.
Catalogs are not cached; every call re-fetches.
"""

import asyncio
import logging
import xml.etree.ElementTree as ET

import aiohttp

from upnp_explorer.exceptions import CatalogError

from .description import _children, _local, _text
from .services import absolute_url
from .types import ActionArgument, ActionCatalog, ActionDescriptor, Device, Service

logger = logging.getLogger(__name__)


def parse_scpd(xml_text: str, service: Service, url: str = "") -> ActionCatalog:
    """
    Parse an SCPD document into an ActionCatalog.

    A document without an actionList is valid and yields no actions.

    Raises:
        CatalogError: If the XML is invalid or is not an SCPD document
    """
    try:
        root = ET.fromstring(xml_text)
    except ET.ParseError as e:
        raise CatalogError(url, e)

    if _local(root.tag) != "scpd":
        raise CatalogError(url, f"unexpected root element {_local(root.tag)!r}")

    actions: list[ActionDescriptor] = []
    for action_list in _children(root, "actionList"):
        for action in _children(action_list, "action"):
            name = _text(action, "name")
            if not name:
                continue

            arguments: list[ActionArgument] = []
            for argument_list in _children(action, "argumentList"):
                for argument in _children(argument_list, "argument"):
                    arguments.append(
                        ActionArgument(
                            name=_text(argument, "name"),
                            direction=_text(argument, "direction").lower() or "in",
                            related_state_variable=_text(argument, "relatedStateVariable"),
                        )
                    )
            actions.append(ActionDescriptor(name=name, arguments=tuple(arguments)))

    return ActionCatalog(service=service, actions=tuple(actions), document=xml_text)


class ActionCatalogResolver:
    """Loads action catalogs for services of resolved devices."""

    def __init__(self, session: aiohttp.ClientSession):
        self._session = session

    async def actions_for(self, device: Device, service: Service) -> ActionCatalog:
        """
        Fetch and parse the SCPD document of a service.

        Raises:
            CatalogError: On fetch or parse failure
        """
        if not service.scpd_url:
            raise CatalogError(service.service_id or service.service_type, "service has no SCPDURL")

        url = absolute_url(device, service.scpd_url)
        logger.debug(f"Fetching SCPD for {service.service_id} from {url}")

        try:
            async with self._session.get(url) as response:
                if response.status != 200:
                    raise CatalogError(url, f"HTTP {response.status}")
                xml_text = await response.text()
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            raise CatalogError(url, e)

        catalog = parse_scpd(xml_text, service, url)
        logger.debug(f"Service {service.service_id} declares {len(catalog.actions)} action(s)")
        return catalog


__all__ = ["ActionCatalogResolver", "parse_scpd"]
