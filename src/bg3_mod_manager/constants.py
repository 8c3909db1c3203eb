GUSTAV_DEV_UUID = "28ac9ce2-2aba-8cda-b3b5-6e922f71b6b8"
GUSTAV_X_UUID = "cb555efe-2d9e-131f-8195-a89329d218ea"

# Modules shipped with the game. They are always present, anchor the front of
# the load order and never produce ordering edges or missing-dependency warnings.
BUILTIN_MODULE_UUIDS: frozenset[str] = frozenset(
    {
        GUSTAV_DEV_UUID,
        GUSTAV_X_UUID,
        "991c9c7a-fb80-40cb-8f0d-b92d4e80e9b1",  # Gustav
        "ed539163-bb70-431b-96a7-f5b2eda5376b",  # Shared
        "3d0c5ff8-c95d-c907-ff3e-34b204f1c630",  # SharedDev
        "b77b6210-ac50-4cb1-a3d5-5702fb9c744c",  # Honour
        "630daa32-70f8-3da5-41b9-154fe8410236",  # MainUI
        "ee5a55ff-eb38-0b27-c5b0-f358dc306d34",  # ModBrowser
    }
)

BUILTIN_AUTHOR = "Larian Studios"
UNKNOWN_AUTHOR = "Unknown"

ARCHIVE_SUFFIX = ".pak"
META_DOCUMENT_NAME = "meta.lsx"
SIDECAR_NAME = "info.json"
MODSETTINGS_NAME = "modsettings.lsx"
EXTENSION_PATH_FRAGMENT = "ScriptExtender/"

# AppSetting keys
SETTING_EXTENSION_DEPLOYED = "runtime_extension_was_deployed"
SETTING_LOAD_ORDER_FINGERPRINT = "load_order_fingerprint"
