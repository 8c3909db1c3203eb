from bg3_mod_manager.models.category_override import CategoryOverride
from bg3_mod_manager.models.settings import AppSetting

__all__ = [
    "AppSetting",
    "CategoryOverride",
]
