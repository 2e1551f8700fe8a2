from google.cloud import resourcemanager_v3
from tenacity import retry

from ..clients import get_projects_client
from ..core import RETRY_CONFIG
from ..schemas.compute import Project


@retry(**RETRY_CONFIG)  # type: ignore[call-overload, untyped-decorator]
def list_projects() -> list[Project]:
    """
    Lists all ACTIVE projects that the current user has access to.
    Order is preserved as returned by the API; callers rely on it.
    """
    client = get_projects_client()

    # We don't specify a parent to list all projects the user can see
    # filtering for ACTIVE state.
    request = resourcemanager_v3.SearchProjectsRequest(query="state:ACTIVE")

    projects = []
    for project in client.search_projects(request=request):
        state = project.state
        projects.append(
            Project(
                project_id=project.project_id,
                display_name=project.display_name or "",
                state=getattr(state, "name", None) or str(state),
            )
        )
    return projects
