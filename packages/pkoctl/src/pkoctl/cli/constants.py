"""CLI constants and registration tables."""

from __future__ import annotations

# (subcommand, module, parser hook, runner), in help order.
COMMANDS: tuple[tuple[str, str, str, str], ...] = (
    ("setup-cluster", "pkoctl.commands.setup_cluster", "configure_setup_cluster_parser", "run_setup_cluster_command"),
    (
        "install-operator",
        "pkoctl.commands.install_operator",
        "configure_install_operator_parser",
        "run_install_operator_command",
    ),
    ("deploy-stack", "pkoctl.commands.deploy_stack", "configure_deploy_stack_parser", "run_deploy_stack_command"),
    ("deploy-helm", "pkoctl.commands.deploy_helm", "configure_deploy_helm_parser", "run_deploy_helm_command"),
    ("install-argocd", "pkoctl.commands.install_argocd", "configure_install_argocd_parser", "run_install_argocd_command"),
    (
        "deploy-app-of-apps",
        "pkoctl.commands.deploy_app_of_apps",
        "configure_deploy_app_of_apps_parser",
        "run_deploy_app_of_apps_command",
    ),
    ("cleanup", "pkoctl.commands.cleanup", "configure_cleanup_parser", "run_cleanup_command"),
    ("quickstart", "pkoctl.commands.quickstart", "configure_quickstart_parser", "run_quickstart_command"),
    ("config", "pkoctl.commands.config_show", "configure_config_parser", "run_config_command"),
)

# deploy-helm lets the env file override variables already exported in the shell.
FILE_WINS_COMMANDS = frozenset({"deploy-helm"})

# Any of these set to a truthy value disables prompts, like --yes.
NONINTERACTIVE_ENV = ("PKOCTL_NONINTERACTIVE", "CI")

# CLI flag -> environment variable it overrides.
OVERRIDE_FLAGS = (
    ("namespace", "STACK_NAMESPACE"),
    ("operator_namespace", "OPERATOR_NAMESPACE"),
    ("stack_name", "STACK_NAME"),
    ("cluster_name", "CLUSTER_NAME"),
)
