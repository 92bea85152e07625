from typing import cast

from dependency_injector import containers, providers

from fansync.controllers.container import ControllerContainer
from fansync.repos.container import RepoContainer


class ApplicationContainer(containers.DeclarativeContainer):
    repos: RepoContainer = cast(RepoContainer, providers.Container(RepoContainer))
    controllers: ControllerContainer = cast(ControllerContainer, providers.Container(ControllerContainer, repos=repos))


def get_wire_container() -> ApplicationContainer:
    application_container = ApplicationContainer()

    application_container.wire(
        packages=["fansync.api.v1"],
        modules=["fansync.api.middlewares.authentication", "fansync.api.utils.errors"],
    )

    return application_container
