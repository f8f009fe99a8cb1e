from .step_10_enable_ssh import EnableSSHStep
from .step_20_hostname import SetHostnameStep
from .step_30_userconf import UserConfStep
from .step_40_wifi import WifiStep
from .step_50_install_package import InstallPackageStep
from .step_60_enable_service import EnableServiceStep
from .step_70_default_config import DefaultConfigStep

__all__ = [
    "EnableSSHStep",
    "SetHostnameStep",
    "UserConfStep",
    "WifiStep",
    "InstallPackageStep",
    "EnableServiceStep",
    "DefaultConfigStep",
]
