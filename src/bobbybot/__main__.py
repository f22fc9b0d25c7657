from bobbybot.main import run

run()
