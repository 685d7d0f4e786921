"""Resource pipeline: channels, filters, format handlers and the resource manager."""

from transmem.resources.channels import FsChannel
from transmem.resources.filters import ResourceFilter, JsonResourceFilter
from transmem.resources.formats import FormatHandler
from transmem.resources.manager import ResourceManager
