"""Newznab indexer adapter for usenet.

Same RSS layout as torznab with ``newznab:attr`` elements; there are no
seeders, the download link is an NZB URL.
"""

from indexers import register_indexer
from indexers.torznab import TorznabIndexer
from quality.model import Protocol

NEWZNAB_NS = "http://www.newznab.com/DTD/2010/feeds/attributes/"


@register_indexer
class NewznabIndexer(TorznabIndexer):
    """Usenet indexer speaking the newznab API."""

    name = "newznab"
    protocol = Protocol.USENET
    attr_namespace = NEWZNAB_NS

    def _seeders(self, attrs: dict[str, str]) -> int:
        return 0
