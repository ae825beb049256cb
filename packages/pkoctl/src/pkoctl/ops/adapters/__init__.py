from .aws import Aws
from .docker import Docker
from .helm import Helm
from .kind import Kind
from .kubectl import Kubectl

__all__ = ["Aws", "Docker", "Helm", "Kind", "Kubectl"]
