"""gcptool: find, reach and manage Compute Engine instances across projects."""

import warnings

# google-api-core and google-cloud-* warn about interpreter deprecations on
# import; those warnings would land in the middle of CLI output.
for _module in ("google.api_core", "google.cloud", "google.auth"):
    warnings.filterwarnings("ignore", category=FutureWarning, module=_module)
