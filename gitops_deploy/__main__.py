"""Run the gitops-deploy command line tool."""

from gitops_deploy.tool.gitops_deploy import main

if __name__ == "__main__":
    main()
