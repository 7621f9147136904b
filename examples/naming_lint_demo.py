"""Minimal demonstration of the naming rules.

Set LM_PROVIDER_CONNECTION_STRING, e.g.
type=cloud;serviceType=openai;endpoint=https://<resource>.openai.azure.com;apiVersion=2024-08-01-preview;deployment=gpt-4o
"""

from lm_core.api.service import lint_properties
from lm_core.rules import PropertyInfo

if __name__ == "__main__":
    properties = [
        PropertyInfo("VirtualMachine", "enabled", "boolean", doc="Whether the machine accepts traffic."),
        PropertyInfo("VirtualMachine", "healthProbeInterval", "int32", doc="Interval between health probes."),
        PropertyInfo("VirtualMachine", "isRunning", "boolean"),
    ]
    for diagnostic in lint_properties(properties, project_root="."):
        print(f"[{diagnostic['severity']}] {diagnostic['target']}: {diagnostic['message']}")
