"""Individual scanners, each exposing a run() function and its parsing helpers."""