from storybook import create_app

app = create_app()
